"""Dependency injection for services."""
from storefront.services.catalog_service import CatalogService
from storefront.services.order_service import OrderService
from storefront.services.report_service import ReportService
from storefront.services.user_service import UserService


def get_order_service() -> OrderService:
    """Get order service instance."""
    return OrderService()


def get_catalog_service() -> CatalogService:
    return CatalogService()


def get_user_service() -> UserService:
    return UserService()


def get_report_service() -> ReportService:
    return ReportService()
