from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from sqlalchemy import select
from repairflow.models.authz import Admin, STATUS_OPEN
from repairflow import get_db
from repairflow.services.policy import compute_effective_permissions, compute_branch_ids

iam_bp = Blueprint('iam', __name__)


@iam_bp.post('/auth/login')
def login():
    data = request.json or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    admin = session.execute(select(Admin).where(Admin.email==email, Admin.status==STATUS_OPEN)).scalar_one_or_none()
    if not admin or not admin.is_active or not admin.verify_password(password):
        abort(401, description='invalid credentials')
    eff = compute_effective_permissions(admin.id)
    claims = {
        'roles': eff['roles'],
        'perms': eff['perms'],
        'branch_ids': compute_branch_ids(admin.id),
        'locale': admin.locale
    }
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(admin.id), additional_claims=claims)
    return {'access_token': token}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    admin_id = int(get_jwt_identity())
    session = get_db()
    admin = session.execute(select(Admin).where(Admin.id==admin_id)).scalar_one_or_none()
    if not admin:
        abort(404)
    eff = compute_effective_permissions(admin.id)
    return {
        'id': admin.id,
        'name': admin.name,
        'email': admin.email,
        'roles': eff['roles'],
        'perms': eff['perms'],
        'locale': admin.locale,
        'branch_ids': compute_branch_ids(admin.id)
    }
