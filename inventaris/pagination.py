"""Page/per_page pagination for list queries."""
import math
from typing import Optional, Tuple

from sqlalchemy.orm import Query

from inventaris.config import settings


def get_pagination(page: Optional[int], per_page: Optional[int]) -> Tuple[int, int, int]:
    """Return (page, limit, offset); out-of-range values fall back to defaults."""
    page_number = page if page and page > 0 else 1
    limit = per_page if per_page and 0 < per_page <= settings.PAGINATION_MAX_LIMIT \
        else settings.PAGINATION_DEFAULT_LIMIT
    return page_number, limit, (page_number - 1) * limit


def paginate(query: Query, page: Optional[int] = None, per_page: Optional[int] = None) -> dict:
    """Run ``query`` for one page and wrap it with pagination metadata."""
    page_number, limit, offset = get_pagination(page, per_page)
    total_items = query.order_by(None).count()
    rows = query.offset(offset).limit(limit).all()
    total_pages = math.ceil(total_items / limit) if total_items else 0

    return {
        "data": rows,
        "pagination": {
            "total_items": total_items,
            "total_pages": total_pages,
            "current_page": page_number,
            "per_page": limit,
            "has_next": page_number < total_pages,
            "has_previous": page_number > 1,
        },
    }
