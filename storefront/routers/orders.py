"""Orders API router."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.auth import get_current_user
from storefront.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from storefront.database import get_db
from storefront.dependencies import get_order_service
from storefront.models import User
from storefront.schemas import OrderEnvelope, OrdersPage, OrderStatus, PlaceOrderRequest
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/api/user/orders", tags=["orders"])


@router.post("", response_model=OrderEnvelope, status_code=201)
def place_order(
    request: PlaceOrderRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Place an order - requires authentication."""
    order = order_service.place_order(
        db=db,
        user_id=user.id,
        items=[item.model_dump() for item in request.items],
        shipping_address=request.shipping_address,
        payment_method=request.payment_method,
        notes=request.notes
    )
    return {"message": "Order placed successfully", "order": order}


@router.get("", response_model=OrdersPage)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[OrderStatus] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Get the authenticated user's orders, newest first."""
    result = order_service.list_orders(db, user, page=page, limit=limit, status=status)
    return {"orders": result.pop("items"), **result}


@router.get("/{order_id}", response_model=OrderEnvelope)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Get a single order owned by the caller (or any order for admins)."""
    return {"order": order_service.get_order(db, user, order_id)}


@router.put("/{order_id}/cancel", response_model=OrderEnvelope)
def cancel_order(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Cancel an order and restore its stock."""
    order = order_service.cancel_order(db, user, order_id)
    return {"message": "Order cancelled successfully", "order": order}
