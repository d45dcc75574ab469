"""Order placement, cancellation and lifecycle management."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from storefront.auth import is_owner_or_admin
from storefront.errors import (
    InsufficientStock,
    InvalidTransition,
    NotFound,
    ProductUnavailable,
    StorefrontError,
    StoreError,
    ValidationError,
)
from storefront.models import (
    ORDER_CANCELLED,
    ORDER_LIFECYCLE,
    ORDER_STATUSES,
    PAYMENT_METHODS,
    TERMINAL_STATUSES,
    Order,
    OrderItem,
    Product,
    User,
)
from storefront.monitoring import (
    order_amount_histogram,
    order_placement_failures_counter,
    order_status_changes_counter,
    orders_cancelled_counter,
    orders_placed_counter,
    stock_restored_counter,
)
from storefront.services.common import paginate

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def compute_subtotal(price: Decimal, quantity: int) -> Decimal:
    """Line subtotal, rounded to cents."""
    return (Decimal(price) * quantity).quantize(CENTS)


class OrderService:
    """Service for placing and managing orders."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def place_order(
        self,
        db: Session,
        user_id: int,
        items: Sequence[Mapping[str, Any]],
        shipping_address: str,
        payment_method: str,
        notes: Optional[str] = None
    ) -> Order:
        """
        Place an order, reserving stock for every line in one transaction.

        Items are processed in the order given. Each product row is locked,
        checked and decremented before the next one is read, so a later
        failure rolls back the earlier decrements together with everything
        else.

        Args:
            db: Database session
            user_id: Ordering user
            items: Requested lines, each with ``product_id`` and ``quantity``
            shipping_address: Delivery address
            payment_method: One of the supported payment methods
            notes: Free-form order notes

        Returns:
            The created order, with items and product summaries loaded

        Raises:
            ValidationError: If the request is malformed
            ProductUnavailable: If a product is missing or inactive
            InsufficientStock: If a product cannot cover the requested quantity
            StoreError: If the transaction fails in the store
        """
        self._validate_placement(items, shipping_address, payment_method)

        span = trace.get_current_span()
        span.set_attribute("user.id", user_id)
        span.set_attribute("order.item_count", len(items))
        span.set_attribute("payment.method", payment_method)

        try:
            with self.tracer.start_as_current_span("db.transaction.place_order") as tx_span:
                total_amount = Decimal("0.00")
                lines: List[Dict[str, Any]] = []

                for item in items:
                    product_id = item["product_id"]
                    quantity = item["quantity"]

                    with self.tracer.start_as_current_span("db.query.reserve_stock") as db_span:
                        db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
                        db_span.set_attribute("db.table", "products")
                        db_span.set_attribute("product.id", product_id)

                        product = (
                            db.query(Product)
                            .filter(Product.id == product_id)
                            .with_for_update()
                            .populate_existing()
                            .first()
                        )

                        if product is None or not product.is_active:
                            raise ProductUnavailable(product_id)

                        if product.stock < quantity:
                            raise InsufficientStock(product.id, product.name, product.stock, quantity)

                        subtotal = compute_subtotal(product.price, quantity)

                        old_stock = product.stock
                        product.stock = old_stock - quantity
                        db.flush()

                        db_span.set_attribute("product.stock.before", old_stock)
                        db_span.set_attribute("product.stock.after", product.stock)

                    total_amount += subtotal
                    lines.append({
                        "product_id": product.id,
                        "quantity": quantity,
                        "price": product.price,
                        "subtotal": subtotal,
                    })

                order = Order(
                    user_id=user_id,
                    total_amount=total_amount,
                    status="pending",
                    payment_status="pending",
                    shipping_address=shipping_address,
                    payment_method=payment_method,
                    notes=notes,
                )
                db.add(order)
                db.flush()
                order_id = order.id

                db.add_all([OrderItem(order_id=order_id, **line) for line in lines])
                db.commit()

                tx_span.set_attribute("order.id", order_id)
                tx_span.set_attribute("order.total_amount", float(total_amount))

        except StorefrontError as e:
            db.rollback()
            order_placement_failures_counter.add(1, {"reason": type(e).__name__})
            logger.warning("Order placement rejected", extra={
                "user_id": user_id,
                "reason": e.message,
                "error_type": type(e).__name__
            })
            raise
        except SQLAlchemyError as e:
            db.rollback()
            order_placement_failures_counter.add(1, {"reason": "StoreError"})
            logger.error("Failed to place order", extra={
                "user_id": user_id,
                "payment_method": payment_method,
                "error": str(e)
            })
            raise StoreError() from e

        orders_placed_counter.add(1, {"payment_method": payment_method})
        order_amount_histogram.record(float(total_amount), {"payment_method": payment_method})

        logger.info("Order placed", extra={
            "user_id": user_id,
            "order_id": order_id,
            "amount": str(total_amount),
            "payment_method": payment_method,
            "item_count": len(lines)
        })

        return self._load_order(db, order_id)

    def cancel_order(self, db: Session, caller: User, order_id: int) -> Order:
        """
        Cancel an order and return its reserved stock.

        The order row is locked before its status is checked, so two
        concurrent cancellations cannot both restore stock.

        Args:
            db: Database session
            caller: Authenticated user; must own the order or be an admin
            order_id: Order identifier

        Returns:
            The cancelled order

        Raises:
            NotFound: If the order does not exist or is not visible to the caller
            InvalidTransition: If the order is delivered or already cancelled
            StoreError: If the transaction fails in the store
        """
        caller_id = caller.id
        try:
            with self.tracer.start_as_current_span("db.transaction.cancel_order") as tx_span:
                tx_span.set_attribute("order.id", order_id)
                tx_span.set_attribute("user.id", caller_id)

                order = (
                    self._visible_orders(db, caller)
                    .filter(Order.id == order_id)
                    .with_for_update()
                    .populate_existing()
                    .first()
                )
                if order is None or not is_owner_or_admin(caller, order):
                    raise NotFound("Order not found")

                if order.status in TERMINAL_STATUSES:
                    raise InvalidTransition(
                        "Cannot cancel delivered or already cancelled order",
                        current_status=order.status
                    )

                restored_units = 0
                for item in order.items:
                    with self.tracer.start_as_current_span("db.query.restore_stock") as db_span:
                        db_span.set_attribute("db.operation", "UPDATE")
                        db_span.set_attribute("db.table", "products")
                        db_span.set_attribute("product.id", item.product_id)

                        product = (
                            db.query(Product)
                            .filter(Product.id == item.product_id)
                            .with_for_update()
                            .populate_existing()
                            .one()
                        )
                        product.stock = product.stock + item.quantity
                        restored_units += item.quantity

                        db_span.set_attribute("product.stock.after", product.stock)

                previous_status = order.status
                order.status = ORDER_CANCELLED
                db.commit()

        except StorefrontError as e:
            db.rollback()
            logger.warning("Order cancellation rejected", extra={
                "user_id": caller_id,
                "order_id": order_id,
                "reason": e.message
            })
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to cancel order", extra={
                "user_id": caller_id,
                "order_id": order_id,
                "error": str(e)
            })
            raise StoreError() from e

        orders_cancelled_counter.add(1, {"previous_status": previous_status})
        stock_restored_counter.add(restored_units)

        logger.info("Order cancelled", extra={
            "user_id": caller_id,
            "order_id": order_id,
            "previous_status": previous_status,
            "units_restored": restored_units
        })

        return self._load_order(db, order_id)

    def get_order(self, db: Session, caller: User, order_id: int) -> Order:
        """
        Get a single order visible to the caller.

        Raises:
            NotFound: If the order does not exist or belongs to someone else
        """
        order = (
            self._visible_orders(db, caller)
            .options(*self._hydration())
            .filter(Order.id == order_id)
            .first()
        )
        if order is None or not is_owner_or_admin(caller, order):
            raise NotFound("Order not found")
        return order

    def list_orders(
        self,
        db: Session,
        caller: User,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        user_id: Optional[int] = None,
        own_only: bool = True
    ) -> Dict[str, Any]:
        """
        List orders newest first.

        Args:
            db: Database session
            caller: Authenticated user
            page: 1-based page number
            limit: Page size
            status: Optional status filter
            user_id: Optional owner filter, honoured for admins only
            own_only: Restrict to the caller's orders even for admins

        Returns:
            Page envelope of orders
        """
        if status is not None and status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {status}")

        with self.tracer.start_as_current_span("db.query.list_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")

            if own_only:
                query = db.query(Order).filter(Order.user_id == caller.id)
            else:
                query = self._visible_orders(db, caller)
                if user_id is not None:
                    query = query.filter(Order.user_id == user_id)
            if status:
                query = query.filter(Order.status == status)

            query = query.options(*self._hydration()).order_by(Order.created_at.desc(), Order.id.desc())
            result = paginate(query, page, limit)

            db_span.set_attribute("db.rows_returned", result["count"])
            return result

    def update_status(
        self,
        db: Session,
        order_id: int,
        status: str,
        delivery_date: Optional[datetime] = None
    ) -> Order:
        """
        Move an order forward along its lifecycle (admin only).

        Cancellation is not accepted here; it goes through ``cancel_order``
        so that stock is restored.

        Raises:
            ValidationError: If the status is unknown
            NotFound: If the order does not exist
            InvalidTransition: If the move is not strictly forward
        """
        if status == ORDER_CANCELLED:
            raise InvalidTransition("Use the cancel operation to cancel an order")
        if status not in ORDER_LIFECYCLE:
            raise ValidationError(f"Unknown order status: {status}")

        try:
            order = (
                db.query(Order)
                .filter(Order.id == order_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if order is None:
                raise NotFound("Order not found")

            if order.status in TERMINAL_STATUSES:
                raise InvalidTransition(
                    f"Cannot change status of a {order.status} order",
                    current_status=order.status
                )
            if ORDER_LIFECYCLE.index(status) <= ORDER_LIFECYCLE.index(order.status):
                raise InvalidTransition(
                    f"Cannot move order from {order.status} to {status}",
                    current_status=order.status
                )

            previous_status = order.status
            order.status = status
            if status == "delivered":
                order.delivery_date = delivery_date or datetime.utcnow()
                if order.payment_method == "cash_on_delivery":
                    order.payment_status = "completed"
            db.commit()

        except StorefrontError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to update order status", extra={
                "order_id": order_id,
                "status": status,
                "error": str(e)
            })
            raise StoreError() from e

        order_status_changes_counter.add(1, {"from": previous_status, "to": status})
        logger.info("Order status updated", extra={
            "order_id": order_id,
            "previous_status": previous_status,
            "status": status
        })

        return self._load_order(db, order_id)

    @staticmethod
    def _validate_placement(
        items: Sequence[Mapping[str, Any]],
        shipping_address: str,
        payment_method: str
    ) -> None:
        if not items:
            raise ValidationError("Order must contain at least one item")
        for item in items:
            quantity = item.get("quantity")
            if item.get("product_id") is None:
                raise ValidationError("Each item must reference a product")
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise ValidationError("Quantity must be at least 1")
        if not shipping_address or not shipping_address.strip():
            raise ValidationError("Shipping address is required")
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Unsupported payment method: {payment_method}")

    @staticmethod
    def _visible_orders(db: Session, caller: User) -> Query:
        query = db.query(Order)
        if not caller.is_admin:
            query = query.filter(Order.user_id == caller.id)
        return query

    @staticmethod
    def _hydration():
        return (
            selectinload(Order.items).joinedload(OrderItem.product).joinedload(Product.category),
            joinedload(Order.user),
        )

    def _load_order(self, db: Session, order_id: int) -> Optional[Order]:
        return (
            db.query(Order)
            .options(*self._hydration())
            .filter(Order.id == order_id)
            .populate_existing()
            .first()
        )
