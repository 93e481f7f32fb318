from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Optional, Protocol

from gstbill.domain.errors import ConstraintViolationError

log = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    cur: sqlite3.Cursor

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...


@dataclass
class SqliteUnitOfWork:
    """One write transaction over the repository's database.

    The row write and every derived-state recomputation it triggers run on
    ``cur`` and become visible together on commit. Any exception rolls the
    whole transaction back; integrity failures from the store surface as
    ConstraintViolationError.
    """

    repo: object
    conn: Optional[sqlite3.Connection] = field(default=None, init=False)
    cur: Optional[sqlite3.Cursor] = field(default=None, init=False)

    def __enter__(self) -> "SqliteUnitOfWork":
        self.conn = self.repo._conn()
        self.conn.isolation_level = None
        self.cur = self.conn.cursor()
        # Take the write lock up front so concurrent writers queue on the busy timeout.
        self.cur.execute("BEGIN IMMEDIATE")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                self.cur.execute("COMMIT")
                return None
            if self.conn.in_transaction:
                self.cur.execute("ROLLBACK")
        finally:
            self.conn.close()
            self.conn = None
            self.cur = None

        if isinstance(exc, sqlite3.IntegrityError):
            log.warning("constraint_violation error=%s", exc)
            raise ConstraintViolationError(str(exc)) from exc
        return None
