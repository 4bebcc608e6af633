from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request
from issuedesk import get_db
from issuedesk.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Add a system audit row to the current DB session.

    Parameters:
      action: short action code e.g. ISSUE.SUBMIT, ISSUE.TRANSITION
      entity: optional entity name (Issue, User)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary
    The caller owns the commit.
    """
    session = get_db()
    # Anonymous requests are recorded as actor 0.
    verify_jwt_in_request(optional=True)
    claims = get_jwt() or {}
    ident = get_jwt_identity()
    log = AuditLog(
        actor_user_id=int(ident) if ident is not None else 0,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        role_snapshot={k: claims.get(k) for k in ('role', 'district_id', 'branch')},
        meta=meta or {},
    )
    session.add(log)
    return log
