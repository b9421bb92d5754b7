"""Typed request fragments for repair order mutations.

Each sub-entity fragment is either UNSET (the caller did not send it; the
matching updater does nothing) or a concrete value. ``None`` is a real
value for the single-row aspects: it removes the pickup or delivery and
cancels the active rental phone.

The ``parse_*`` helpers turn a JSON body into these types and raise
ValidationFailed with the dotted location of the first offending field.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from repairflow.errors import ValidationFailed
from repairflow.utils.validation import validate_choice
from repairflow.models.rental import RepairOrderRentalPhone
from repairflow.models.repair_order import RepairOrder

COMMENT_MAX_LENGTH = 1000
NOTES_MAX_LENGTH = 1000
# decimal places of the Numeric money and coordinate columns
MONEY_SCALE = 2
COORD_SCALE = 7


class _Unset:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'UNSET'


UNSET: Any = _Unset()


@dataclass(frozen=True)
class PartInput:
    id: int
    part_price: float
    quantity: int = 1


@dataclass(frozen=True)
class ProblemInput:
    problem_category_id: int
    price: float
    estimated_minutes: int
    parts: Tuple[PartInput, ...] = ()

    def snapshot(self) -> Dict[str, Any]:
        return {
            'problem_category_id': self.problem_category_id,
            'price': float(self.price),
            'estimated_minutes': self.estimated_minutes,
            'parts': sorted(
                ({'id': p.id, 'part_price': float(p.part_price), 'quantity': p.quantity} for p in self.parts),
                key=lambda p: p['id'],
            ),
        }


@dataclass(frozen=True)
class CommentInput:
    text: str


@dataclass(frozen=True)
class LocationInput:
    lat: float
    long: float
    description: str
    courier_id: Optional[int] = None

    def snapshot(self) -> Dict[str, Any]:
        return {
            'lat': float(self.lat),
            'long': float(self.long),
            'description': self.description,
            'courier_id': self.courier_id,
        }


@dataclass(frozen=True)
class RentalInput:
    rental_phone_device_id: int
    is_free: Optional[bool] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class OrderCreate:
    user_id: int
    phone_category_id: int
    priority: str = RepairOrder.PRIORITY_MEDIUM
    imei: Optional[str] = None
    status_id: Optional[int] = None
    admin_ids: Any = UNSET
    initial_problems: Any = UNSET
    final_problems: Any = UNSET
    comments: Any = UNSET
    pickup: Any = UNSET
    delivery: Any = UNSET


@dataclass
class OrderUpdate:
    user_id: Any = UNSET
    status_id: Any = UNSET
    priority: Any = UNSET
    phone_category_id: Any = UNSET
    imei: Any = UNSET
    admin_ids: Any = UNSET
    initial_problems: Any = UNSET
    final_problems: Any = UNSET
    comments: Any = UNSET
    pickup: Any = UNSET
    delivery: Any = UNSET
    rental_phone: Any = UNSET

    SCALAR_FIELDS = ('user_id', 'status_id', 'priority', 'phone_category_id', 'imei')


# --- primitive coercion -------------------------------------------------

def _int(value: Any, location: str, minimum: int = 1) -> int:
    if isinstance(value, bool):
        raise ValidationFailed(f'{location} must be an integer', location=location)
    try:
        out = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f'{location} must be an integer', location=location)
    if isinstance(value, float) and value != out:
        raise ValidationFailed(f'{location} must be an integer', location=location)
    if out < minimum:
        raise ValidationFailed(f'{location} must be >= {minimum}', location=location)
    return out


def _number(value: Any, location: str, minimum: float = 0) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationFailed(f'{location} must be a number', location=location)
    if value < minimum:
        raise ValidationFailed(f'{location} must be >= {minimum}', location=location)
    return float(value)


def _string(value: Any, location: str, max_length: int, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        raise ValidationFailed(f'{location} must be a string', location=location)
    value = value.strip()
    if not value and not allow_empty:
        raise ValidationFailed(f'{location} required', location=location)
    if len(value) > max_length:
        raise ValidationFailed(f'{location} too long (max {max_length})', location=location)
    return value


def _object(value: Any, location: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationFailed(f'{location} must be an object', location=location)
    return value


def _list(value: Any, location: str) -> list:
    if not isinstance(value, list):
        raise ValidationFailed(f'{location} must be an array', location=location)
    return value


def parse_id(value: Any, location: str) -> int:
    if value is None:
        raise ValidationFailed(f'{location} required', location=location)
    return _int(value, location)


def parse_text(value: Any, location: str = 'text') -> str:
    return _string(value, location, COMMENT_MAX_LENGTH)


# --- fragments ----------------------------------------------------------

def parse_admin_ids(raw: Any, location: str = 'admin_ids') -> List[int]:
    ids = [_int(v, location) for v in _list(raw, location)]
    if len(set(ids)) != len(ids):
        raise ValidationFailed('Duplicate admin ids', location=location)
    return ids


def parse_parts(raw: Any, location: str) -> Tuple[PartInput, ...]:
    parts = []
    for idx, item in enumerate(_list(raw, location)):
        loc = f'{location}[{idx}]'
        item = _object(item, loc)
        parts.append(PartInput(
            id=_int(item.get('id'), f'{loc}.id'),
            part_price=round(_number(item.get('part_price'), f'{loc}.part_price'), MONEY_SCALE),
            quantity=_int(item.get('quantity', 1), f'{loc}.quantity'),
        ))
    return tuple(parts)


def parse_problems(raw: Any, location: str) -> List[ProblemInput]:
    problems = []
    for idx, item in enumerate(_list(raw, location)):
        loc = f'{location}[{idx}]'
        item = _object(item, loc)
        problems.append(ProblemInput(
            problem_category_id=_int(item.get('problem_category_id'), f'{loc}.problem_category_id'),
            price=round(_number(item.get('price'), f'{loc}.price'), MONEY_SCALE),
            estimated_minutes=_int(item.get('estimated_minutes'), f'{loc}.estimated_minutes', minimum=0),
            parts=parse_parts(item.get('parts', []), f'{loc}.parts'),
        ))
    return problems


def parse_comments(raw: Any, location: str = 'comments') -> List[CommentInput]:
    out = []
    for idx, item in enumerate(_list(raw, location)):
        loc = f'{location}[{idx}]'
        item = _object(item, loc)
        out.append(CommentInput(text=_string(item.get('text'), f'{loc}.text', COMMENT_MAX_LENGTH)))
    return out


def parse_location(raw: Any, location: str) -> Optional[LocationInput]:
    if raw is None:
        return None
    raw = _object(raw, location)
    lat = _number(raw.get('lat'), f'{location}.lat', minimum=-90)
    lng = _number(raw.get('long'), f'{location}.long', minimum=-180)
    if lat > 90:
        raise ValidationFailed('lat out of range', location=f'{location}.lat')
    if lng > 180:
        raise ValidationFailed('long out of range', location=f'{location}.long')
    courier = raw.get('courier_id')
    return LocationInput(
        lat=round(lat, COORD_SCALE),
        long=round(lng, COORD_SCALE),
        description=_string(raw.get('description'), f'{location}.description', 1000),
        courier_id=_int(courier, f'{location}.courier_id') if courier is not None else None,
    )


def parse_rental(raw: Any, location: str = 'rental_phone') -> Optional[RentalInput]:
    if raw is None:
        return None
    raw = _object(raw, location)
    is_free = raw.get('is_free')
    if is_free is not None and not isinstance(is_free, bool):
        raise ValidationFailed('is_free must be a boolean', location=f'{location}.is_free')
    price = raw.get('price')
    if price is not None:
        price = round(_number(price, f'{location}.price'), MONEY_SCALE)
    currency = raw.get('currency')
    if currency is not None:
        validate_choice(currency, RepairOrderRentalPhone.CURRENCIES, f'{location}.currency')
    notes = raw.get('notes')
    if notes is not None:
        notes = _string(notes, f'{location}.notes', NOTES_MAX_LENGTH, allow_empty=True)
    return RentalInput(
        rental_phone_device_id=_int(raw.get('rental_phone_device_id'), f'{location}.rental_phone_device_id'),
        is_free=is_free,
        price=price,
        currency=currency,
        notes=notes,
    )


def parse_priority(raw: Any, location: str = 'priority') -> str:
    return validate_choice(raw, RepairOrder.ALL_PRIORITIES, location)


def _parse_imei(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    return _string(raw, 'imei', 50)


# --- whole requests -----------------------------------------------------

def _fragments(data: Dict[str, Any], target, names) -> None:
    parsers = {
        'admin_ids': parse_admin_ids,
        'initial_problems': lambda v: parse_problems(v, 'initial_problems'),
        'final_problems': lambda v: parse_problems(v, 'final_problems'),
        'comments': parse_comments,
        'pickup': lambda v: parse_location(v, 'pickup'),
        'delivery': lambda v: parse_location(v, 'delivery'),
        'rental_phone': parse_rental,
    }
    for name in names:
        if name in data:
            setattr(target, name, parsers[name](data[name]))


def parse_order_create(data: Any) -> OrderCreate:
    data = _object(data or {}, 'body')
    for required in ('user_id', 'phone_category_id'):
        if data.get(required) is None:
            raise ValidationFailed(f'{required} required', location=required)
    payload = OrderCreate(
        user_id=_int(data['user_id'], 'user_id'),
        phone_category_id=_int(data['phone_category_id'], 'phone_category_id'),
        priority=parse_priority(data.get('priority', RepairOrder.PRIORITY_MEDIUM)),
        imei=_parse_imei(data.get('imei')),
        status_id=_int(data['status_id'], 'status_id') if data.get('status_id') is not None else None,
    )
    _fragments(data, payload, ('admin_ids', 'initial_problems', 'final_problems', 'comments', 'pickup', 'delivery'))
    return payload


def parse_order_update(data: Any) -> OrderUpdate:
    data = _object(data or {}, 'body')
    payload = OrderUpdate()
    for name in ('user_id', 'status_id', 'phone_category_id'):
        if name in data:
            setattr(payload, name, _int(data[name], name))
    if 'priority' in data:
        payload.priority = parse_priority(data['priority'])
    if 'imei' in data:
        payload.imei = _parse_imei(data['imei'])
    _fragments(data, payload, ('admin_ids', 'initial_problems', 'final_problems', 'comments', 'pickup', 'delivery', 'rental_phone'))
    return payload


__all__ = [
    'UNSET', 'parse_id', 'parse_text', 'PartInput', 'ProblemInput', 'CommentInput', 'LocationInput', 'RentalInput',
    'OrderCreate', 'OrderUpdate', 'parse_admin_ids', 'parse_problems', 'parse_comments', 'parse_location',
    'parse_rental', 'parse_priority', 'parse_order_create', 'parse_order_update',
]
