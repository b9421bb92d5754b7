"""Page/limit handling for the per-status order board."""
from __future__ import annotations
from dataclasses import dataclass
from repairflow.errors import ValidationFailed

DEFAULT_LIMIT = 20
MAX_LIMIT = 200


@dataclass(frozen=True)
class Page:
    page: int = 1
    limit: int = DEFAULT_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def slice(self, rows):
        return rows[self.offset:self.offset + self.limit]


def _as_int(raw, name: str, default: int) -> int:
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed(f'{name} must be an integer', location=name)


def normalize_pagination(page_raw, limit_raw) -> Page:
    """Out-of-range values are clamped (page >= 1, 1 <= limit <= MAX_LIMIT); junk is a 400."""
    page = max(1, _as_int(page_raw, 'page', 1))
    limit = max(1, min(_as_int(limit_raw, 'limit', DEFAULT_LIMIT), MAX_LIMIT))
    return Page(page=page, limit=limit)
