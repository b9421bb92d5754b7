from __future__ import annotations
from flask import Blueprint, request
from repairflow import get_db
from repairflow.decorators.auth import require_permissions
from repairflow.errors import ValidationFailed
from repairflow.services.payloads import parse_id
from repairflow.services.transitions import StatusTransitionService

transitions_bp = Blueprint('status_transitions', __name__)


def _serialize(row):
    return {'branch_id': row.branch_id, 'from_status_id': row.from_status_id, 'to_status_id': row.to_status_id}


@transitions_bp.get('/<int:status_id>')
@require_permissions('RPR.STATUS.MANAGE')
def list_transitions(status_id: int):
    rows = StatusTransitionService(get_db()).list_for(status_id)
    return {'data': [_serialize(r) for r in rows]}


@transitions_bp.put('/<int:status_id>')
@require_permissions('RPR.STATUS.MANAGE')
def replace_transitions(status_id: int):
    data = request.get_json(silent=True) or {}
    to_status_ids = data.get('to_status_ids')
    if not isinstance(to_status_ids, list):
        raise ValidationFailed('to_status_ids must be an array', location='to_status_ids')
    rows = StatusTransitionService(get_db()).replace(status_id, [parse_id(s, 'to_status_ids') for s in to_status_ids])
    return {'data': [_serialize(r) for r in rows]}
