from __future__ import annotations
from typing import Dict, Optional

from issuedesk.domain.errors import InvalidRequest


def apply_multi_sort(stmt, sort_expr: Optional[str], allowed: Dict[str, object], tie_breaker):
    """Order ``stmt`` by a comma separated list of fields, each optionally prefixed with '-'.

    ``allowed`` maps public field names to columns; ``tie_breaker`` keeps pages deterministic.
    """
    if not sort_expr:
        return stmt.order_by(tie_breaker.asc())
    clauses = []
    for raw in sort_expr.split(','):
        token = raw.strip()
        if not token:
            continue
        desc = token.startswith('-')
        key = token[1:] if desc else token
        col = allowed.get(key)
        if col is None:
            raise InvalidRequest(f'Invalid sort field {key}', {'allowed': sorted(allowed)})
        clauses.append(col.desc() if desc else col.asc())
    clauses.append(tie_breaker.asc())
    return stmt.order_by(*clauses)
