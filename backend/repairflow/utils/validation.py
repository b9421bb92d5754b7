"""Reusable validation helpers.

Keeps enum-like string checks (priority, rental currency) in one
place with consistent 400 error semantics and a location tag.
"""
from __future__ import annotations
from typing import Iterable
from repairflow.errors import ValidationFailed


def validate_choice(value: str, allowed: Iterable[str], field_name: str = 'value') -> str:
    """Validate that value is inside allowed.

    Returns the value (to enable inline usage) or raises ValidationFailed.
    """
    allowed = list(allowed)
    if value not in allowed:
        raise ValidationFailed(f"{field_name} invalid", location=field_name, allowed=allowed)
    return value

__all__ = ['validate_choice']
