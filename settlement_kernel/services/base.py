"""
BaseService -- shared plumbing for the kernel write services.

Parties, ledger entries, sequence counters and credit lots are all written
through subclasses of ``BaseService``.  Each one works inside the session
it is handed: it adds and flushes, but commit and rollback belong to the
payment service in ``settlement_services``, so one payment and every row
it touches land together or not at all.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy import Select
from sqlalchemy.orm import Session

from settlement_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Holds the caller's session.  Never commits."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def locked(stmt: Select) -> Select:
        """
        Row-lock ``stmt`` for the rest of the transaction.

        ``populate_existing`` refreshes rows already in the identity map, so
        the caller sees the committed values it locked and not a stale copy
        loaded earlier in the session.
        """
        return stmt.with_for_update().execution_options(populate_existing=True)
