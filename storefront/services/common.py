"""Helpers shared by the query services."""
import math
from typing import Any, Dict

from sqlalchemy.orm import Query

from storefront.config import MAX_PAGE_SIZE
from storefront.errors import ValidationError


def paginate(query: Query, page: int, limit: int) -> Dict[str, Any]:
    """
    Run a query one page at a time.

    Args:
        query: Ordered query to page through
        page: 1-based page number
        limit: Page size

    Returns:
        Page envelope with items, count, total, total_pages and current_page
    """
    if page < 1:
        raise ValidationError("Page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")

    total = query.order_by(None).count()
    items = query.limit(limit).offset((page - 1) * limit).all()

    return {
        "items": items,
        "count": len(items),
        "total": total,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
    }


def like_pattern(search: str) -> str:
    """Escape LIKE wildcards in user input and wrap it for a contains match."""
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
