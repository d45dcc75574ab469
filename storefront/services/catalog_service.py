"""Catalog browsing and catalog administration."""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from storefront.errors import Conflict, NotFound, ValidationError
from storefront.models import Category, Product
from storefront.services.common import like_pattern, paginate

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "created_at": Product.created_at,
    "price": Product.price,
    "name": Product.name,
    "stock": Product.stock,
}
PRODUCT_FIELDS = (
    "name", "description", "price", "stock", "category_id",
    "brand", "images", "specifications", "is_active",
)
CATEGORY_FIELDS = ("name", "description", "is_active")


class CatalogService:
    """Service for products and categories."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def list_products(
        self,
        db: Session,
        page: int = 1,
        limit: int = 12,
        search: Optional[str] = None,
        category_id: Optional[int] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        include_inactive: bool = False
    ) -> Dict[str, Any]:
        """
        List products with filtering, sorting and pagination.

        Args:
            db: Database session
            page: 1-based page number
            limit: Page size
            search: Case-insensitive match on name or description
            category_id: Restrict to one category
            min_price: Inclusive lower price bound
            max_price: Inclusive upper price bound
            sort_by: One of created_at, price, name, stock
            sort_order: asc or desc
            include_inactive: Also list deactivated products (admin views)

        Returns:
            Page envelope of products
        """
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(f"Cannot sort by {sort_by}")
        if sort_order.lower() not in ("asc", "desc"):
            raise ValidationError("Sort order must be asc or desc")

        with self.tracer.start_as_current_span("db.query.list_products") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")

            query = db.query(Product).options(joinedload(Product.category))
            if not include_inactive:
                query = query.filter(Product.is_active.is_(True))
            if search:
                pattern = like_pattern(search)
                query = query.filter(or_(
                    Product.name.ilike(pattern, escape="\\"),
                    Product.description.ilike(pattern, escape="\\")
                ))
            if category_id is not None:
                query = query.filter(Product.category_id == category_id)
            if min_price is not None:
                query = query.filter(Product.price >= min_price)
            if max_price is not None:
                query = query.filter(Product.price <= max_price)

            column = SORTABLE_FIELDS[sort_by]
            ordering = column.asc() if sort_order.lower() == "asc" else column.desc()
            result = paginate(query.order_by(ordering, Product.id), page, limit)

            db_span.set_attribute("db.rows_returned", result["count"])
            return result

    def get_product(self, db: Session, product_id: int, include_inactive: bool = False) -> Product:
        product = (
            db.query(Product)
            .options(joinedload(Product.category))
            .filter(Product.id == product_id)
            .first()
        )
        if product is None or (not product.is_active and not include_inactive):
            raise NotFound("Product not found")
        return product

    def list_categories(self, db: Session) -> List[Dict[str, Any]]:
        """Active categories with the number of active products in each."""
        product_counts = (
            db.query(Product.category_id, func.count(Product.id).label("product_count"))
            .filter(Product.is_active.is_(True))
            .group_by(Product.category_id)
            .subquery()
        )
        rows = (
            db.query(Category, func.coalesce(product_counts.c.product_count, 0))
            .outerjoin(product_counts, product_counts.c.category_id == Category.id)
            .filter(Category.is_active.is_(True))
            .order_by(Category.name)
            .all()
        )
        return [
            {
                "id": category.id,
                "name": category.name,
                "description": category.description,
                "product_count": count,
            }
            for category, count in rows
        ]

    def admin_list_categories(
        self,
        db: Session,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None
    ) -> Dict[str, Any]:
        query = db.query(Category)
        if search:
            query = query.filter(Category.name.ilike(like_pattern(search), escape="\\"))
        return paginate(query.order_by(Category.created_at.desc(), Category.id.desc()), page, limit)

    def create_category(self, db: Session, data: Dict[str, Any]) -> Category:
        if db.query(Category).filter(Category.name == data["name"]).first() is not None:
            raise Conflict("Category name already exists")

        category = Category(**{k: v for k, v in data.items() if k in CATEGORY_FIELDS})
        db.add(category)
        self._commit(db, "Category name already exists")
        db.refresh(category)

        logger.info("Category created", extra={"category_id": category.id})
        return category

    def update_category(self, db: Session, category_id: int, changes: Dict[str, Any]) -> Category:
        category = db.get(Category, category_id)
        if category is None:
            raise NotFound("Category not found")

        for field, value in changes.items():
            if field in CATEGORY_FIELDS:
                setattr(category, field, value)
        self._commit(db, "Category name already exists")
        db.refresh(category)

        logger.info("Category updated", extra={"category_id": category_id})
        return category

    def delete_category(self, db: Session, category_id: int) -> None:
        """
        Delete a category.

        Raises:
            NotFound: If the category does not exist
            Conflict: If products still reference it
        """
        category = db.get(Category, category_id)
        if category is None:
            raise NotFound("Category not found")
        if db.query(Product).filter(Product.category_id == category_id).count() > 0:
            raise Conflict("Category still has products; move or delete them first")

        db.delete(category)
        db.commit()
        logger.info("Category deleted", extra={"category_id": category_id})

    def create_product(self, db: Session, data: Dict[str, Any]) -> Product:
        self._check_category(db, data["category_id"])

        product = Product(**{k: v for k, v in data.items() if k in PRODUCT_FIELDS})
        db.add(product)
        self._commit(db, "Invalid reference to related resource")

        logger.info("Product created", extra={
            "product_id": product.id,
            "category_id": product.category_id,
            "stock": product.stock
        })
        return self.get_product(db, product.id, include_inactive=True)

    def update_product(self, db: Session, product_id: int, changes: Dict[str, Any]) -> Product:
        """
        Update product fields.

        Stock set here is an absolute restock value; it is locked like any
        other stock write so it cannot interleave with a placement.
        """
        product = (
            db.query(Product)
            .filter(Product.id == product_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if product is None:
            db.rollback()
            raise NotFound("Product not found")
        if changes.get("category_id") is not None:
            self._check_category(db, changes["category_id"])

        for field, value in changes.items():
            if field in PRODUCT_FIELDS:
                setattr(product, field, value)
        self._commit(db, "Invalid reference to related resource")

        logger.info("Product updated", extra={"product_id": product_id, "fields": sorted(changes)})
        return self.get_product(db, product_id, include_inactive=True)

    def delete_product(self, db: Session, product_id: int) -> None:
        """Soft-delete a product; order items keep referencing it."""
        product = db.get(Product, product_id)
        if product is None:
            raise NotFound("Product not found")
        product.is_active = False
        db.commit()
        logger.info("Product deactivated", extra={"product_id": product_id})

    @staticmethod
    def _check_category(db: Session, category_id: int) -> None:
        if db.get(Category, category_id) is None:
            raise ValidationError(f"Category with ID {category_id} does not exist")

    @staticmethod
    def _commit(db: Session, conflict_message: str) -> None:
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise Conflict(conflict_message)
