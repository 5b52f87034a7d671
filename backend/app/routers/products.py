from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import Category, Product
from backend.app.db.session import get_session
from backend.app.routers.schemas import CategoryOut, ProductIn, ProductOut


router = APIRouter()


async def _get_or_404(session: AsyncSession, product_id: int) -> Product:
    product = await session.get(Product, product_id)
    if product is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


async def _ensure_category(session: AsyncSession, category_id: int) -> None:
    if await session.get(Category, category_id) is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Category not found")


async def _reload(session: AsyncSession, product_id: int) -> Product:
    result = await session.execute(
        select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


@router.get("/categories", response_model=list[CategoryOut])
async def list_categories(session: AsyncSession = Depends(get_session)) -> list[Category]:
    return list(await session.scalars(select(Category).order_by(Category.name)))


@router.get("/products", response_model=list[ProductOut])
async def list_products(
    name: str | None = None,
    category_id: int | None = None,
    alcoholic: bool | None = None,
    available: bool | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[Product]:
    query = select(Product)
    if name:
        query = query.where(Product.name.ilike(f"%{name}%"))
    if category_id is not None:
        query = query.where(Product.category_id == category_id)
    if alcoholic is not None:
        query = query.where(Product.alcoholic.is_(alcoholic))
    if available is not None:
        query = query.where(Product.available.is_(available))
    query = query.order_by(Product.category_id, Product.name)
    return list(await session.scalars(query))


@router.get("/products/{product_id}", response_model=ProductOut)
async def get_product(product_id: int, session: AsyncSession = Depends(get_session)) -> Product:
    return await _get_or_404(session, product_id)


@router.post("/products", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(payload: ProductIn, session: AsyncSession = Depends(get_session)) -> Product:
    await _ensure_category(session, payload.category_id)
    product = Product(**payload.model_dump())
    session.add(product)
    await session.commit()
    return await _reload(session, product.id)


@router.put("/products/{product_id}", response_model=ProductOut)
async def update_product(product_id: int, payload: ProductIn, session: AsyncSession = Depends(get_session)) -> Product:
    product = await _get_or_404(session, product_id)
    await _ensure_category(session, payload.category_id)
    for field, value in payload.model_dump().items():
        setattr(product, field, value)
    await session.commit()
    return await _reload(session, product_id)


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(product_id: int, session: AsyncSession = Depends(get_session)) -> None:
    product = await _get_or_404(session, product_id)
    await session.delete(product)
    await session.commit()
