"""Sales reporting queries.

All filters travel as bound parameters; nothing from the request is
interpolated into SQL text.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from storefront.errors import ValidationError
from storefront.models import Category, Order, OrderItem, Product

logger = logging.getLogger(__name__)

# Orders whose lines count as sold. Pending and cancelled orders are excluded.
COUNTED_STATUSES = ("confirmed", "processing", "shipped", "delivered")


class ReportService:
    """Aggregate sales statistics for the admin surface."""

    def sales_by_category(
        self,
        db: Session,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        self._check_range(start_date, end_date)
        total_revenue = func.sum(OrderItem.subtotal).label("total_revenue")

        stmt = (
            select(
                Category.id,
                Category.name.label("category_name"),
                func.count(OrderItem.id).label("total_items_sold"),
                func.sum(OrderItem.quantity).label("total_quantity"),
                total_revenue,
            )
            .join(Product, Product.category_id == Category.id)
            .join(OrderItem, OrderItem.product_id == Product.id)
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.status.in_(COUNTED_STATUSES))
            .group_by(Category.id, Category.name)
            .order_by(total_revenue.desc())
        )
        stmt = self._within(stmt, start_date, end_date)
        return self._rows(db, stmt)

    def top_selling_products(
        self,
        db: Session,
        limit: int = 10,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        self._check_range(start_date, end_date)
        sold = self._sold_lines(start_date, end_date)

        stmt = (
            select(
                Product.id,
                Product.name.label("product_name"),
                Product.price,
                Category.name.label("category_name"),
                sold.c.total_quantity_sold,
                sold.c.total_revenue,
                sold.c.total_orders,
            )
            .join(sold, sold.c.product_id == Product.id)
            .outerjoin(Category, Category.id == Product.category_id)
            .order_by(sold.c.total_quantity_sold.desc(), Product.id)
            .limit(limit)
        )
        return self._rows(db, stmt)

    def worst_selling_products(
        self,
        db: Session,
        limit: int = 10,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Active products ranked by fewest units sold, unsold products included."""
        self._check_range(start_date, end_date)
        sold = self._sold_lines(start_date, end_date)
        quantity_sold = func.coalesce(sold.c.total_quantity_sold, 0)

        stmt = (
            select(
                Product.id,
                Product.name.label("product_name"),
                Product.price,
                Product.stock,
                Category.name.label("category_name"),
                quantity_sold.label("total_quantity_sold"),
                func.coalesce(sold.c.total_revenue, 0).label("total_revenue"),
                func.coalesce(sold.c.total_orders, 0).label("total_orders"),
            )
            .outerjoin(sold, sold.c.product_id == Product.id)
            .outerjoin(Category, Category.id == Product.category_id)
            .where(Product.is_active.is_(True))
            .order_by(quantity_sold.asc(), Product.stock.desc(), Product.id)
            .limit(limit)
        )
        return self._rows(db, stmt)

    def _sold_lines(self, start_date: Optional[datetime], end_date: Optional[datetime]):
        stmt = (
            select(
                OrderItem.product_id,
                func.sum(OrderItem.quantity).label("total_quantity_sold"),
                func.sum(OrderItem.subtotal).label("total_revenue"),
                func.count(distinct(OrderItem.order_id)).label("total_orders"),
            )
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.status.in_(COUNTED_STATUSES))
            .group_by(OrderItem.product_id)
        )
        return self._within(stmt, start_date, end_date).subquery("sold")

    @staticmethod
    def _within(stmt, start_date: Optional[datetime], end_date: Optional[datetime]):
        if start_date is not None:
            stmt = stmt.where(Order.created_at >= start_date)
        if end_date is not None:
            stmt = stmt.where(Order.created_at <= end_date)
        return stmt

    @staticmethod
    def _check_range(start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
        if start_date is not None and end_date is not None and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

    @staticmethod
    def _rows(db: Session, stmt) -> List[Dict[str, Any]]:
        return [dict(row._mapping) for row in db.execute(stmt)]
