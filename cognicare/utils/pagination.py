import math

from flask import current_app, request


def get_page_args(default_limit=None):
    """(page, limit) from the query string, clamped to sane bounds."""
    default_limit = default_limit or current_app.config['DEFAULT_PAGE_SIZE']
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', default_limit, type=int)
    if page < 1:
        page = 1
    if limit < 1 or limit > current_app.config['MAX_PAGE_SIZE']:
        limit = default_limit
    return page, limit


def paginate(query, page, limit):
    """Return (items, pagination) for a query, counting before slicing."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, {
        'total': total,
        'page': page,
        'limit': limit,
        'totalPages': math.ceil(total / limit) if limit else 0,
    }
