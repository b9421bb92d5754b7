from __future__ import annotations
from flask import Blueprint, current_app, request
from repairflow import get_cache, get_db
from repairflow.decorators.auth import require_permissions
from repairflow.errors import ValidationFailed
from repairflow.services.payloads import parse_id
from repairflow.services.permissions import PermissionCache, StatusPermissionService, row_capabilities

perms_bp = Blueprint('status_permissions', __name__)


def _service() -> StatusPermissionService:
    cache = PermissionCache(get_cache(), current_app.config['PERMISSION_CACHE_TTL'])
    return StatusPermissionService(get_db(), cache)


@perms_bp.post('')
@require_permissions('RPR.PERMISSION.MANAGE')
def assign_permissions():
    data = request.get_json(silent=True) or {}
    role_id = parse_id(data.get('role_id'), 'role_id')
    branch_id = parse_id(data.get('branch_id'), 'branch_id')
    status_ids = data.get('status_ids')
    if not isinstance(status_ids, list):
        raise ValidationFailed('status_ids must be an array', location='status_ids')
    capabilities = data.get('capabilities') or {}
    if not isinstance(capabilities, dict):
        raise ValidationFailed('capabilities must be an object', location='capabilities')
    rows = _service().assign(role_id, branch_id, [parse_id(s, 'status_ids') for s in status_ids], capabilities)
    return {
        'data': [
            {'role_id': r.role_id, 'branch_id': r.branch_id, 'status_id': r.status_id, 'capabilities': row_capabilities(r)}
            for r in rows
        ]
    }, 201


@perms_bp.delete('/roles/<int:role_id>')
@require_permissions('RPR.PERMISSION.MANAGE')
def revoke_role(role_id: int):
    return {'removed': _service().revoke_role(role_id)}


@perms_bp.delete('/statuses/<int:status_id>')
@require_permissions('RPR.PERMISSION.MANAGE')
def revoke_status(status_id: int):
    return {'removed': _service().revoke_status(status_id)}


@perms_bp.delete('/branches/<int:branch_id>')
@require_permissions('RPR.PERMISSION.MANAGE')
def revoke_branch(branch_id: int):
    return {'removed': _service().revoke_branch(branch_id)}
