from functools import wraps
from flask_jwt_extended import verify_jwt_in_request
from issuedesk.domain.errors import Forbidden
from issuedesk.services.policy import current_actor
from issuedesk.services.visibility import checked_role


def require_roles(*roles):
    """Authenticated request whose actor holds one of ``roles`` (legacy names accepted)."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            actor = current_actor()
            if roles and checked_role(actor) not in roles:
                raise Forbidden('Role not permitted', {
                    'role': actor.role.value,
                    'required_roles': sorted(getattr(r, 'value', r) for r in roles),
                })
            return fn(*args, **kwargs)
        return wrapper
    return outer
