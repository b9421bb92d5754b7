from __future__ import annotations
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from repairflow.config.pagination import normalize_pagination
from repairflow.errors import ValidationFailed
from repairflow.services.orders import build_order_service, serialize_order, serialize_comment
from repairflow.services.payloads import (
    parse_admin_ids, parse_id, parse_location, parse_order_create, parse_order_update,
    parse_problems, parse_rental, parse_text,
)
from repairflow.services.policy import current_actor
from repairflow.services.updaters.rental_phone import rental_snapshot

orders_bp = Blueprint('repair_orders', __name__)


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _rental_json(row):
    return dict(rental_snapshot(row), id=row.id)


@orders_bp.post('')
@jwt_required()
def create_order():
    data = _body()
    branch_id = parse_id(data.get('branch_id'), 'branch_id')
    payload = parse_order_create(data)
    order = build_order_service().create_order(current_actor(), branch_id, payload)
    return serialize_order(order), 201


@orders_bp.get('')
@jwt_required()
def list_orders():
    branch_id = parse_id(request.args.get('branch_id'), 'branch_id')
    window = normalize_pagination(request.args.get('page'), request.args.get('limit'))
    sort_by = request.args.get('sort_by', 'sort')
    sort_order = request.args.get('sort_order', 'asc')
    data = build_order_service().list_orders_for_admin(current_actor(), branch_id, window.page, window.limit, sort_by, sort_order)
    return {
        'data': {str(status_id): value for status_id, value in data.items()},
        'pagination': {'page': window.page, 'limit': window.limit},
    }


@orders_bp.get('/<int:order_id>')
@jwt_required()
def get_order(order_id: int):
    return build_order_service().get_order(current_actor(), order_id)


@orders_bp.patch('/<int:order_id>')
@jwt_required()
def update_order(order_id: int):
    payload = parse_order_update(_body())
    order = build_order_service().update_order(current_actor(), order_id, payload)
    return serialize_order(order)


@orders_bp.delete('/<int:order_id>')
@jwt_required()
def delete_order(order_id: int):
    order = build_order_service().soft_delete_order(current_actor(), order_id)
    return {'id': order.id, 'status': order.status}


@orders_bp.patch('/<int:order_id>/move')
@jwt_required()
def move_order(order_id: int):
    data = _body()
    status_id = parse_id(data.get('status_id'), 'status_id')
    sort = parse_id(data['sort'], 'sort') if data.get('sort') is not None else None
    order = build_order_service().move_order(current_actor(), order_id, status_id, sort)
    return serialize_order(order)


@orders_bp.get('/<int:order_id>/history')
@jwt_required()
def order_history(order_id: int):
    return {'data': build_order_service().get_history(current_actor(), order_id)}


@orders_bp.post('/<int:order_id>/admins')
@jwt_required()
def assign_admins(order_id: int):
    admin_ids = parse_admin_ids(_body().get('admin_ids'))
    changed = build_order_service().assign_admins(current_actor(), order_id, admin_ids)
    return {'changed': changed}


@orders_bp.delete('/<int:order_id>/admins')
@jwt_required()
def remove_admins(order_id: int):
    admin_ids = parse_admin_ids(_body().get('admin_ids'))
    changed = build_order_service().remove_admins(current_actor(), order_id, admin_ids)
    return {'changed': changed}


@orders_bp.put('/<int:order_id>/initial-problems')
@jwt_required()
def set_initial_problems(order_id: int):
    problems = parse_problems(_body().get('problems'), 'initial_problems')
    changed = build_order_service().set_initial_problems(current_actor(), order_id, problems)
    return {'changed': changed}


@orders_bp.put('/<int:order_id>/final-problems')
@jwt_required()
def set_final_problems(order_id: int):
    problems = parse_problems(_body().get('problems'), 'final_problems')
    changed = build_order_service().set_final_problems(current_actor(), order_id, problems)
    return {'changed': changed}


@orders_bp.post('/<int:order_id>/comments')
@jwt_required()
def add_comment(order_id: int):
    text = parse_text(_body().get('text'))
    comment = build_order_service().add_comment(current_actor(), order_id, text)
    return serialize_comment(comment), 201


@orders_bp.patch('/<int:order_id>/comments/<int:comment_id>')
@jwt_required()
def update_comment(order_id: int, comment_id: int):
    text = parse_text(_body().get('text'))
    comment = build_order_service().update_comment(current_actor(), order_id, comment_id, text)
    return serialize_comment(comment)


@orders_bp.delete('/<int:order_id>/comments/<int:comment_id>')
@jwt_required()
def delete_comment(order_id: int, comment_id: int):
    build_order_service().delete_comment(current_actor(), order_id, comment_id)
    return {'id': comment_id, 'deleted': True}


# Body ``{"pickup": {...}}`` replaces the address, ``{"pickup": null}`` removes it.
@orders_bp.put('/<int:order_id>/pickup')
@jwt_required()
def set_pickup(order_id: int):
    data = _body()
    if 'pickup' not in data:
        raise ValidationFailed('pickup required', location='pickup')
    changed = build_order_service().set_pickup(current_actor(), order_id, parse_location(data['pickup'], 'pickup'))
    return {'changed': changed}


@orders_bp.put('/<int:order_id>/delivery')
@jwt_required()
def set_delivery(order_id: int):
    data = _body()
    if 'delivery' not in data:
        raise ValidationFailed('delivery required', location='delivery')
    changed = build_order_service().set_delivery(current_actor(), order_id, parse_location(data['delivery'], 'delivery'))
    return {'changed': changed}


@orders_bp.post('/<int:order_id>/rental-phone')
@jwt_required()
def create_rental_phone(order_id: int):
    rental = build_order_service().create_rental_phone(current_actor(), order_id, parse_rental(_body()))
    return _rental_json(rental), 201


@orders_bp.patch('/<int:order_id>/rental-phone')
@jwt_required()
def update_rental_phone(order_id: int):
    rental = build_order_service().update_rental_phone(current_actor(), order_id, parse_rental(_body()))
    return _rental_json(rental)


@orders_bp.delete('/<int:order_id>/rental-phone')
@jwt_required()
def cancel_rental_phone(order_id: int):
    rental = build_order_service().cancel_rental_phone(current_actor(), order_id)
    return _rental_json(rental)
