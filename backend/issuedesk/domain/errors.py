"""Domain error hierarchy.

Every error carries a machine code, the HTTP status the API layer maps it to and a
``details`` dict with enough structure for a client to render an actionable message.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, Optional


class IssueDeskError(Exception):
    code = 'ISSUEDESK_ERROR'
    http_status = 400
    title = 'Bad Request'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': {
                'status': self.http_status,
                'title': self.title,
                'code': self.code,
                'detail': self.message,
                'details': self.details,
            }
        }


class NotFound(IssueDeskError):
    code = 'NOT_FOUND'
    http_status = 404
    title = 'Not Found'


class InvalidRequest(IssueDeskError):
    code = 'INVALID_REQUEST'
    http_status = 400
    title = 'Bad Request'


class UnknownRole(IssueDeskError):
    code = 'UNKNOWN_ROLE'
    http_status = 403
    title = 'Forbidden'


class TransitionError(IssueDeskError):
    """Base for every refusal raised by the lifecycle engine or the review gate."""
    code = 'TRANSITION_ERROR'
    http_status = 409
    title = 'Conflict'


class Forbidden(TransitionError):
    code = 'FORBIDDEN'
    http_status = 403
    title = 'Forbidden'


class IllegalTransition(TransitionError):
    code = 'ILLEGAL_TRANSITION'

    def __init__(self, current_status, attempted_status, intent: Optional[str] = None,
                 required_roles: Iterable[str] = (), message: Optional[str] = None):
        current = getattr(current_status, 'value', current_status)
        attempted = getattr(attempted_status, 'value', attempted_status)
        super().__init__(
            message or f'Cannot move issue from {current} to {attempted}',
            {
                'current_status': current,
                'attempted_status': attempted,
                'intent': intent,
                'required_roles': sorted(getattr(r, 'value', r) for r in required_roles),
            },
        )
        self.current_status = current_status
        self.attempted_status = attempted_status


class NoChange(TransitionError):
    code = 'NO_CHANGE'

    def __init__(self, current_status, intent: Optional[str] = None):
        current = getattr(current_status, 'value', current_status)
        super().__init__(f'Issue is already {current}', {'current_status': current, 'intent': intent})
        self.current_status = current_status


class NotReviewable(TransitionError):
    code = 'NOT_REVIEWABLE'

    def __init__(self, current_status):
        current = getattr(current_status, 'value', current_status)
        super().__init__(f'This issue cannot be reviewed. Status: {current}', {'current_status': current})
        self.current_status = current_status


class NotDeletable(TransitionError):
    code = 'NOT_DELETABLE'


__all__ = [
    'IssueDeskError', 'NotFound', 'InvalidRequest', 'UnknownRole', 'TransitionError', 'Forbidden',
    'IllegalTransition', 'NoChange', 'NotReviewable', 'NotDeletable',
]
