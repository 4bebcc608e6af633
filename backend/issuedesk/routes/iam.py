from flask import Blueprint, current_app, request, abort
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from sqlalchemy import select
from issuedesk import get_db
from issuedesk.constants.roles import APPROVING_ROLES, Role, role_names
from issuedesk.decorators.auth import require_roles
from issuedesk.models.authz import User
from issuedesk.services.policy import actor_claims, current_actor
from issuedesk.services.visibility import resolve_scope

iam_bp = Blueprint('iam', __name__)


def _user_json(u: User):
    return {
        'id': u.id,
        'name': u.name,
        'email': u.email,
        'role': u.role,
        'district_id': u.district_id,
        'branch': u.branch,
        'is_active': u.is_active,
    }


@iam_bp.post('/auth/login')
def login():
    data = request.json or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.verify_password(password):
        abort(401, description='invalid credentials')
    if not user.is_active:
        abort(403, description='account disabled')
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=actor_claims(user))
    return {'access_token': token}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    user_id = int(get_jwt_identity())
    session = get_db()
    user = session.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    actor = current_actor()
    body = _user_json(user)
    body['role'] = actor.role.value
    body['scope'] = resolve_scope(actor, current_app.config['HEAD_OFFICE_DISTRICT_ID']).kind.value
    return body


@iam_bp.get('/technicians')
@require_roles(*APPROVING_ROLES)
def list_technicians():
    session = get_db()
    names = role_names(Role.TECHNICIAN)
    stmt = select(User).where(User.role.in_(names), User.is_active.is_(True)).order_by(User.name.asc(), User.id.asc())
    actor = current_actor()
    rows = session.execute(stmt).scalars().all()
    if actor.branch:
        rows = [u for u in rows if u.branch == actor.branch]
    return {'data': [_user_json(u) for u in rows]}
