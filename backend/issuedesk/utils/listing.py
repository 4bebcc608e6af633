"""Paged list responses with ETag / Last-Modified conditional handling."""
from __future__ import annotations
import hashlib
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Iterable, Optional, Tuple

from flask import make_response, request
from sqlalchemy import func, select

from issuedesk.config.pagination import normalize_pagination, page_limits
from issuedesk.domain.errors import InvalidRequest
from issuedesk.utils.clock import ensure_utc, format_iso

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """UTC timestamp truncated to whole seconds (HTTP dates carry no fraction)."""
    return ensure_utc(dt).replace(microsecond=0)


def apply_pagination(session, stmt) -> Tuple[list, int, int, int]:
    """Execute ``stmt`` for the requested page; returns (rows, total, limit, offset)."""
    try:
        default_limit, max_limit = page_limits()
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'), default_limit, max_limit)
    except ValueError as e:
        raise InvalidRequest(str(e), {'limit': request.args.get('limit'), 'offset': request.args.get('offset')})
    total = session.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows = list(session.execute(stmt.offset(offset).limit(limit)).scalars())
    return rows, total, limit, offset


def compute_etag(ids: Iterable[int], total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows),
        },
    }


def _http_date(dt: datetime) -> str:
    return format_datetime(dt, usegmt=True)


def _set_validators(resp, etag: str, latest: Optional[datetime]):
    resp.headers['ETag'] = etag
    if latest:
        resp.headers['Last-Modified'] = _http_date(latest)
        resp.headers['X-Last-Modified-ISO'] = format_iso(latest)
    return resp


def list_etag(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime],
              tag_items: Optional[Iterable] = None) -> str:
    """Rows are serialized issues by default; their versions make the tag change on every transition."""
    latest = canonicalize_timestamp(latest_ts) if latest_ts else None
    if tag_items is None:
        tag_items = [(r.get('id'), r.get('version')) for r in rows]
    return compute_etag(tag_items, total, limit, offset, format_iso(latest) if latest else '')


def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None,
                              tag_items: Optional[Iterable] = None):
    etag = list_etag(rows, total, limit, offset, latest_ts, tag_items)
    latest = canonicalize_timestamp(latest_ts) if latest_ts else None
    resp = make_response(build_list_payload(rows, total, limit, offset))
    return _set_validators(resp, etag, latest), etag


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    if not header_val:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(header_val.replace('Z', '+00:00')))
    except ValueError:
        pass
    try:
        return ensure_utc(parsedate_to_datetime(header_val))
    except (TypeError, ValueError):
        return None


def handle_conditional(etag_value: str, latest_ts: Optional[datetime]):
    """Return a 304 response when the client's copy is current, else None.

    If-None-Match takes precedence over If-Modified-Since.
    """
    latest = canonicalize_timestamp(latest_ts) if latest_ts else None
    inm = request.headers.get('If-None-Match')
    if inm:
        if inm.strip('"') == etag_value:
            return _set_validators(make_response('', 304), etag_value, latest)
        return None
    ims = _parse_if_modified_since(request.headers.get('If-Modified-Since'))
    if ims and latest and latest <= canonicalize_timestamp(ims) + TIMESTAMP_TOLERANCE:
        return _set_validators(make_response('', 304), etag_value, latest)
    return None


__all__ = [
    'apply_pagination', 'compute_etag', 'list_etag', 'build_list_payload', 'make_cached_list_response',
    'handle_conditional', 'canonicalize_timestamp',
]
