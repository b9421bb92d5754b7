"""Central definitions of capability names and global permission codes.
Capability names double as column names on repair_order_status_permissions;
never rename one silently.
"""
from __future__ import annotations
from typing import Dict, List

CAN_ADD = 'can_add'
CAN_VIEW = 'can_view'
CAN_UPDATE = 'can_update'
CAN_DELETE = 'can_delete'
CAN_ASSIGN_ADMIN = 'can_assign_admin'
CAN_CHANGE_STATUS = 'can_change_status'
CAN_CHANGE_INITIAL_PROBLEMS = 'can_change_initial_problems'
CAN_CHANGE_FINAL_PROBLEMS = 'can_change_final_problems'
CAN_COMMENT = 'can_comment'
CAN_PICKUP_MANAGE = 'can_pickup_manage'
CAN_DELIVERY_MANAGE = 'can_delivery_manage'
CAN_MANAGE_RENTAL_PHONE = 'can_manage_rental_phone'
CAN_VIEW_HISTORY = 'can_view_history'
CAN_PAYMENT_ADD = 'can_payment_add'
CAN_PAYMENT_CANCEL = 'can_payment_cancel'
CAN_VIEW_PAYMENTS = 'can_view_payments'

ALL_CAPABILITIES: List[str] = [
    CAN_ADD, CAN_VIEW, CAN_UPDATE, CAN_DELETE, CAN_ASSIGN_ADMIN, CAN_CHANGE_STATUS,
    CAN_CHANGE_INITIAL_PROBLEMS, CAN_CHANGE_FINAL_PROBLEMS, CAN_COMMENT,
    CAN_PICKUP_MANAGE, CAN_DELIVERY_MANAGE, CAN_MANAGE_RENTAL_PHONE, CAN_VIEW_HISTORY,
    CAN_PAYMENT_ADD, CAN_PAYMENT_CANCEL, CAN_VIEW_PAYMENTS,
]

# Global (branch/status independent) permission codes: SERVICE.ACTION
SERVICE_ACTIONS = {
    'RPR': ['PERMISSION.MANAGE', 'STATUS.MANAGE'],
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

# Default capability presets applied per status by the seed script.
ROLE_PRESETS: Dict[str, List[str]] = {
    'Super Admin': ['*'],  # implies all
    'Manager': [
        CAN_ADD, CAN_VIEW, CAN_UPDATE, CAN_DELETE, CAN_ASSIGN_ADMIN, CAN_CHANGE_STATUS,
        CAN_CHANGE_INITIAL_PROBLEMS, CAN_CHANGE_FINAL_PROBLEMS, CAN_COMMENT,
        CAN_PICKUP_MANAGE, CAN_DELIVERY_MANAGE, CAN_MANAGE_RENTAL_PHONE, CAN_VIEW_HISTORY,
    ],
    'Master': [CAN_VIEW, CAN_CHANGE_STATUS, CAN_CHANGE_FINAL_PROBLEMS, CAN_COMMENT, CAN_VIEW_HISTORY],
    'Courier': [CAN_VIEW, CAN_COMMENT, CAN_PICKUP_MANAGE, CAN_DELIVERY_MANAGE],
}


def expand_preset(codes: List[str]) -> List[str]:
    if '*' in codes:
        return list(ALL_CAPABILITIES)
    return [c for c in ALL_CAPABILITIES if c in codes]
