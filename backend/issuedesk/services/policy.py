"""Actor descriptor from the request's JWT claims."""
from __future__ import annotations
from typing import Any, Dict

from flask_jwt_extended import get_jwt, get_jwt_identity

from issuedesk.domain.errors import UnknownRole
from issuedesk.domain.models import Actor
from issuedesk.constants.roles import parse_role


def actor_claims(user) -> Dict[str, Any]:
    """Additional JWT claims describing ``user`` as an actor."""
    return {
        'role': user.role,
        'district_id': user.district_id,
        'branch': user.branch,
        'name': user.name,
    }


def current_actor() -> Actor:
    claims = get_jwt()
    user_id = int(get_jwt_identity())
    raw_role = claims.get('role')
    try:
        role = parse_role(raw_role)
    except ValueError:
        raise UnknownRole(f'Unknown role {raw_role!r}', {'role': raw_role, 'user_id': user_id})
    return Actor(
        user_id=user_id,
        role=role,
        district_id=claims.get('district_id'),
        branch=claims.get('branch'),
        name=claims.get('name'),
    )


__all__ = ['actor_claims', 'current_actor']
