"""Admin API router: catalog, orders and user management."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.auth import require_admin
from storefront.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from storefront.database import get_db
from storefront.dependencies import get_catalog_service, get_order_service, get_user_service
from storefront.models import User
from storefront.schemas import (
    AuthResponse,
    CategoriesPage,
    CategoryCreate,
    CategoryEnvelope,
    CategoryUpdate,
    Envelope,
    LoginRequest,
    OrderEnvelope,
    OrdersPage,
    OrderStatus,
    OrderStatusUpdate,
    ProductCreate,
    ProductEnvelope,
    ProductsPage,
    ProductUpdate,
    Role,
    UserEnvelope,
    UsersPage,
    UserStatsEnvelope,
    UserUpdate,
)
from storefront.services.catalog_service import CatalogService
from storefront.services.order_service import OrderService
from storefront.services.user_service import UserService

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/login", response_model=AuthResponse)
def admin_login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    """Authenticate an active admin account."""
    result = user_service.login(db, request.email, request.password, admin_only=True)
    return {"message": "Admin login successful", **result}


# --- Categories ---

@router.get("/categories", response_model=CategoriesPage)
def list_categories(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    result = catalog.admin_list_categories(db, page=page, limit=limit, search=search)
    return {"categories": result.pop("items"), **result}


@router.post("/categories", response_model=CategoryEnvelope, status_code=201)
def create_category(
    request: CategoryCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    category = catalog.create_category(db, request.model_dump())
    return {"message": "Category created successfully", "category": category}


@router.put("/categories/{category_id}", response_model=CategoryEnvelope)
def update_category(
    category_id: int,
    request: CategoryUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    category = catalog.update_category(db, category_id, request.model_dump(exclude_unset=True))
    return {"message": "Category updated successfully", "category": category}


@router.delete("/categories/{category_id}", response_model=Envelope)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    catalog.delete_category(db, category_id)
    return {"message": "Category deleted successfully"}


# --- Products ---

@router.get("/products", response_model=ProductsPage)
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=100),
    category_id: Optional[int] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """List all products, including deactivated ones."""
    result = catalog.list_products(
        db,
        page=page,
        limit=limit,
        search=search,
        category_id=category_id,
        include_inactive=True
    )
    return {"products": result.pop("items"), **result}


@router.post("/products", response_model=ProductEnvelope, status_code=201)
def create_product(
    request: ProductCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    product = catalog.create_product(db, request.model_dump())
    return {"message": "Product created successfully", "product": product}


@router.put("/products/{product_id}", response_model=ProductEnvelope)
def update_product(
    product_id: int,
    request: ProductUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    product = catalog.update_product(db, product_id, request.model_dump(exclude_unset=True))
    return {"message": "Product updated successfully", "product": product}


@router.delete("/products/{product_id}", response_model=Envelope)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Deactivate a product. Past orders keep referencing it."""
    catalog.delete_product(db, product_id)
    return {"message": "Product deleted successfully"}


# --- Orders ---

@router.get("/orders", response_model=OrdersPage)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[OrderStatus] = None,
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    result = order_service.list_orders(
        db, admin, page=page, limit=limit, status=status, user_id=user_id, own_only=False
    )
    return {"orders": result.pop("items"), **result}


@router.put("/orders/{order_id}/status", response_model=OrderEnvelope)
def update_order_status(
    order_id: int,
    request: OrderStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    """Move an order forward along its lifecycle."""
    order = order_service.update_status(db, order_id, request.status, request.delivery_date)
    return {"message": "Order status updated successfully", "order": order}


@router.put("/orders/{order_id}/cancel", response_model=OrderEnvelope)
def cancel_order(
    order_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    order = order_service.cancel_order(db, admin, order_id)
    return {"message": "Order cancelled successfully", "order": order}


# --- Users ---

@router.get("/users", response_model=UsersPage)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, max_length=100),
    role: Optional[Role] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    result = user_service.list_users(db, page=page, limit=limit, search=search, role=role)
    return {"users": result.pop("items"), **result}


@router.get("/users/stats/overview", response_model=UserStatsEnvelope)
def user_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    return {"stats": user_service.user_stats(db)}


@router.get("/users/{user_id}", response_model=UserEnvelope)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    return {"user": user_service.get_user(db, user_id)}


@router.put("/users/{user_id}", response_model=UserEnvelope)
def update_user(
    user_id: int,
    request: UserUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    user = user_service.update_user(db, user_id, request.model_dump(exclude_unset=True))
    return {"message": "User updated successfully", "user": user}


@router.delete("/users/{user_id}", response_model=Envelope)
def deactivate_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    user_service.deactivate_user(db, user_id)
    return {"message": "User deactivated successfully"}
