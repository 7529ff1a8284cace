"""Page/limit handling shared by the list endpoints."""
from __future__ import annotations

import math
from typing import Optional

from rest_framework.exceptions import ValidationError

MAX_LIMIT = 100


def _as_int(value, name: str) -> Optional[int]:
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid or missing numeric field: {name}')


def page_params(page=None, limit=None, *, default_limit: int = 10) -> Optional[tuple[int, int]]:
    """Return ``(page, limit)`` clamped to sane bounds, or None when neither is given."""
    page_i = _as_int(page, 'page')
    limit_i = _as_int(limit, 'limit')
    if page_i is None and limit_i is None:
        return None
    page_i = max(1, page_i or 1)
    limit_i = min(MAX_LIMIT, max(1, limit_i or default_limit))
    return page_i, limit_i


def paginate(qs, page=None, limit=None, *, default_limit: int = 10, always: bool = False):
    """Slice ``qs`` and build pagination metadata.

    Without paging params the full queryset is returned and the meta is
    None, unless ``always`` forces the default page.
    """
    params = page_params(page, limit, default_limit=default_limit)
    if params is None:
        if not always:
            return list(qs), None
        params = (1, default_limit)
    page_i, limit_i = params
    total = qs.count()
    start = (page_i - 1) * limit_i
    items = list(qs[start:start + limit_i])
    meta = {
        'total': total,
        'page': page_i,
        'limit': limit_i,
        'totalPages': math.ceil(total / limit_i) if total else 0,
    }
    return items, meta
