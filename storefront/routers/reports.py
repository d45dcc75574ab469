"""Sales reports API router."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.auth import require_admin
from storefront.database import get_db
from storefront.dependencies import get_report_service
from storefront.models import User
from storefront.schemas import ReportEnvelope
from storefront.services.report_service import ReportService

router = APIRouter(prefix="/api/admin/reports", tags=["reports"])


@router.get("/sales-by-category", response_model=ReportEnvelope)
def sales_by_category(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    reports: ReportService = Depends(get_report_service)
):
    """Revenue and units sold per category for confirmed-or-later orders."""
    data = reports.sales_by_category(db, start_date=start_date, end_date=end_date)
    return {"message": "Sales report by category retrieved successfully", "data": data}


@router.get("/top-selling-products", response_model=ReportEnvelope)
def top_selling_products(
    limit: int = Query(10, ge=1, le=100),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    reports: ReportService = Depends(get_report_service)
):
    data = reports.top_selling_products(db, limit=limit, start_date=start_date, end_date=end_date)
    return {"message": "Top selling products retrieved successfully", "data": data}


@router.get("/worst-selling-products", response_model=ReportEnvelope)
def worst_selling_products(
    limit: int = Query(10, ge=1, le=100),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    reports: ReportService = Depends(get_report_service)
):
    data = reports.worst_selling_products(db, limit=limit, start_date=start_date, end_date=end_date)
    return {"message": "Worst selling products retrieved successfully", "data": data}
