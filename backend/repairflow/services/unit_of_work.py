"""Transaction handle threaded through the orchestrator and every updater.

    with UnitOfWork(session) as uow:
        ...writes through uow.session...
        uow.after_commit(lambda: cache.invalidate_branch(branch_id))

Leaving the block normally commits; any exception rolls back everything
written inside it (audit rows included). SQLAlchemy errors surface as
StorageFailure. After-commit hooks run only once the commit succeeded.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from repairflow.errors import StorageFailure

logger = logging.getLogger(__name__)


class UnitOfWork:
    def __init__(self, session: Session, statement_timeout_ms: Optional[int] = None):
        self.session = session
        self.statement_timeout_ms = statement_timeout_ms
        self._hooks: List[Callable[[], None]] = []

    def __enter__(self) -> "UnitOfWork":
        if self.statement_timeout_ms and self.session.get_bind().dialect.name == 'postgresql':
            # scoped to the current transaction only
            self.session.execute(text(f"SET LOCAL statement_timeout = {int(self.statement_timeout_ms)}"))
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.session.rollback()
            if isinstance(exc, SQLAlchemyError):
                logger.exception("unit of work rolled back on storage error")
                raise StorageFailure('Transaction failed', location='transaction') from exc
            return False
        try:
            self.session.commit()
        except SQLAlchemyError as err:
            self.session.rollback()
            logger.exception("commit failed")
            raise StorageFailure('Commit failed', location='transaction') from err
        for hook in self._hooks:
            hook()
        return False

    def after_commit(self, hook: Callable[[], None]) -> None:
        self._hooks.append(hook)

    def flush(self) -> None:
        self.session.flush()
