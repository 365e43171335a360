from sqlalchemy import func
from sqlmodel import select

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def paginate(
    *,
    session,
    query,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
):
    """
    Run ``query`` for one page. The count ignores the query's ORDER BY;
    ``limit`` is clamped to ``MAX_LIMIT``.
    """
    page = max(page or 1, 1)
    limit = min(limit if limit and limit > 0 else DEFAULT_LIMIT, MAX_LIMIT)

    total = session.exec(
        select(func.count()).select_from(query.order_by(None).subquery())
    ).one()
    total_pages = (total + limit - 1) // limit

    results = session.exec(
        query.offset((page - 1) * limit).limit(limit)
    ).all()

    return {
        "total_items": total,
        "total_pages": total_pages,
        "current_page": page,
        "limit": limit,
        "has_next": page < total_pages,
        "results": results,
    }
