from datetime import date, datetime
from zoneinfo import ZoneInfo

from backend.app.core.config import settings


def get_today() -> date:
    """Current calendar date in the venue's timezone."""
    return datetime.now(ZoneInfo(settings.TIMEZONE)).date()
