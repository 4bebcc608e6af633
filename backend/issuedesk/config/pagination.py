"""Page size limits for list endpoints.

``PAGE_DEFAULT_LIMIT`` / ``PAGE_MAX_LIMIT`` in the app config override the defaults below.
"""
from typing import Optional, Tuple

from flask import current_app

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def page_limits() -> Tuple[int, int]:
    cfg = current_app.config
    return int(cfg.get('PAGE_DEFAULT_LIMIT', DEFAULT_LIMIT)), int(cfg.get('PAGE_MAX_LIMIT', MAX_LIMIT))


def _as_int(raw: Optional[str], fallback: int) -> int:
    if raw is None or not str(raw).strip():
        return fallback
    return int(str(raw).strip())


def normalize_pagination(limit_raw, offset_raw, default_limit: int = DEFAULT_LIMIT,
                         max_limit: int = MAX_LIMIT) -> Tuple[int, int]:
    """(limit, offset) with limit clamped to [1, max_limit]; ValueError for non-integers."""
    try:
        limit = _as_int(limit_raw, default_limit)
        offset = _as_int(offset_raw, 0)
    except ValueError:
        raise ValueError(f'limit/offset must be integers (limit={limit_raw!r}, offset={offset_raw!r})')
    return max(1, min(limit, max_limit)), max(0, offset)
