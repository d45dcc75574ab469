"""Public catalog API router."""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from opentelemetry import trace
from sqlalchemy.orm import Session

from storefront.config import CATALOG_PAGE_SIZE, MAX_PAGE_SIZE
from storefront.database import get_db
from storefront.dependencies import get_catalog_service
from storefront.monitoring import product_detail_views_counter, product_views_counter
from storefront.schemas import CategoriesEnvelope, ProductEnvelope, ProductsPage
from storefront.services.catalog_service import CatalogService

router = APIRouter(prefix="/api/user", tags=["catalog"])


@router.get("/products", response_model=ProductsPage)
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(CATALOG_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=100),
    category_id: Optional[int] = None,
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """
    List active products with filtering, sorting and pagination.

    Examples:
    - GET /api/user/products?search=laptop
    - GET /api/user/products?category_id=1&min_price=50&sort_by=price&sort_order=asc
    """
    result = catalog.list_products(
        db,
        page=page,
        limit=limit,
        search=search,
        category_id=category_id,
        min_price=min_price,
        max_price=max_price,
        sort_by=sort_by,
        sort_order=sort_order
    )

    span = trace.get_current_span()
    span.set_attribute("product.count", result["count"])
    span.set_attribute("endpoint.type", "product_catalog")
    product_views_counter.add(1, {"filtered": str(bool(search or category_id))})

    return {"products": result.pop("items"), **result}


@router.get("/products/{product_id}", response_model=ProductEnvelope)
def get_product(
    product_id: int = Path(..., description="Product ID"),
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Get an active product with its category."""
    product = catalog.get_product(db, product_id)

    trace.get_current_span().set_attribute("product.id", product_id)
    product_detail_views_counter.add(1, {
        "product_id": str(product_id),
        "category": product.category.name
    })

    return {"product": product}


@router.get("/categories", response_model=CategoriesEnvelope)
def list_categories(
    db: Session = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """List active categories with their active product counts."""
    return {"categories": catalog.list_categories(db)}
