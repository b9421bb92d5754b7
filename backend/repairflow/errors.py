"""Error taxonomy for repair order operations.

Every error is a werkzeug HTTPException so route handlers can let it
propagate to the unified error handler. Besides the HTTP status each
error exposes a stable ``kind`` and an optional ``location`` naming the
offending input, e.g. ``initial_problems.parts``.
"""
from __future__ import annotations
from typing import Any, Dict, Optional
from werkzeug.exceptions import HTTPException


class DomainError(HTTPException):
    code = 500
    kind = 'error'

    def __init__(self, description: Optional[str] = None, location: Optional[str] = None, **details: Any):
        super().__init__(description=description)
        self.location = location
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        out = {
            'status': self.code,
            'title': self.name,
            'detail': self.description,
            'kind': self.kind,
            'location': self.location,
        }
        out.update(self.details)
        return out


class NotFound(DomainError):
    code = 404
    kind = 'not_found'


class PermissionDenied(DomainError):
    code = 403
    kind = 'forbidden'

    @property
    def capability(self) -> Optional[str]:
        return self.details.get('capability')

    @property
    def status_id(self) -> Optional[int]:
        return self.details.get('status_id')


class ValidationFailed(DomainError):
    code = 400
    kind = 'bad_request'


class Conflict(DomainError):
    code = 409
    kind = 'conflict'


class StorageFailure(DomainError):
    """Transaction or commit failure. Nothing was committed, so callers may retry."""
    code = 500
    kind = 'storage_failure'
    retryable = True


__all__ = ['DomainError', 'NotFound', 'PermissionDenied', 'ValidationFailed', 'Conflict', 'StorageFailure']
