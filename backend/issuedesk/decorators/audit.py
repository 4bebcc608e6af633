"""Audit logging decorator for route handlers that change issues.

Usage:

@audit_log('ISSUE.SUBMIT', entity='Issue', entity_id_key='id', meta_keys=['status', 'location'])
def submit(): ... return issue_json, 201

@audit_log('ISSUE.TRANSITION', entity='Issue', entity_id_arg='issue_id', diff_keys=['status', 'assigned_to'],
           pre_fetch=lambda args, kwargs: {...})
def transition(issue_id): ...

Parameters:
  action: audit action code
  entity: entity label
  entity_id_key: key in the returned JSON whose value becomes entity_id
  entity_id_arg: path parameter used for entity_id when the key is absent
  meta_keys: keys projected from the returned JSON into meta
  meta_builder: callable (data, rv, args, kwargs) -> meta dict; overrides meta_keys
  diff_keys / pre_fetch: record before/after values of these keys in meta['changes']

Only successful calls are recorded; exceptions from the view propagate untouched. A failure
while writing the audit row is logged and does not alter the response, since the issue change
has already been committed.
"""
import logging
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional

from issuedesk import get_db
from issuedesk.services.audit import add_audit

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    if isinstance(rv, tuple) and rv:
        return rv[0]
    return rv


def _diff(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    return {
        k: {'before': before.get(k), 'after': after.get(k)}
        for k in keys
        if k in before and k in after and before.get(k) != after.get(k)
    }


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before = pre_fetch(args, kwargs) if diff_keys and pre_fetch else None
            rv = fn(*args, **kwargs)
            data = _extract_payload(rv)
            if not isinstance(data, dict):
                data = {}
            entity_id = data.get(entity_id_key) if entity_id_key else None
            if entity_id is None and entity_id_arg:
                entity_id = kwargs.get(entity_id_arg)
            if meta_builder:
                meta = meta_builder(data, rv, args, kwargs) or {}
            else:
                meta = {k: data.get(k) for k in (meta_keys or ()) if k in data}
            if diff_keys and isinstance(before, dict):
                changes = _diff(before, data, diff_keys)
                if changes:
                    meta['changes'] = changes
            session = get_db()
            try:
                add_audit(action, entity, entity_id, meta)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception('Failed to record audit log %s for %s %s', action, entity, entity_id)
            return rv
        return wrapper
    return outer
