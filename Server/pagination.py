"""
SafawiNet Server - Pagination Helpers

Shared page/limit handling for list endpoints.
"""

import math
from typing import Any, Dict

from fastapi import HTTPException, status


def ValidatePageParams(page: int, limit: int, max_limit: int = 100):
    """
    Reject out-of-range paging parameters

    Raises:
        HTTPException: 400 if page < 1 or limit outside 1..max_limit
    """
    if page < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Page must be a positive integer"
        )
    if limit < 1 or limit > max_limit:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Limit must be between 1 and {max_limit}"
        )


def Paginate(query, page: int, limit: int):
    """
    Apply offset/limit to a SQLAlchemy query

    Returns:
        tuple: (items, total_count)
    """
    total_count = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total_count


def BuildPagination(page: int, limit: int, total_count: int) -> Dict[str, Any]:
    """
    Build the pagination block returned with list responses

    Args:
        page: Current page (1-based)
        limit: Page size
        total_count: Number of matching records

    Returns:
        dict: currentPage, totalPages, totalCount, limit, hasNextPage,
              hasPrevPage, nextPage, prevPage
    """
    total_pages = math.ceil(total_count / limit) if limit else 0
    has_next = page < total_pages
    has_prev = page > 1

    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalCount": total_count,
        "limit": limit,
        "hasNextPage": has_next,
        "hasPrevPage": has_prev,
        "nextPage": page + 1 if has_next else None,
        "prevPage": page - 1 if has_prev else None,
    }
