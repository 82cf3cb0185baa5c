"""
Module: settlement_kernel.selectors.base
Responsibility: Common base for the read-only views over parties, ledger
    entries and payments.
Architecture position: Kernel > Selectors.  May import from db/, domain/ and
    models/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Selectors never add, delete, flush or commit.
    - Rows leave a selector as frozen DTOs, never as ORM instances.
"""

from abc import ABC
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from sqlalchemy import Select
from sqlalchemy.orm import Session

from settlement_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Read-only queries on the caller's session."""

    def __init__(self, session: Session):
        self.session = session

    def _dtos(
        self,
        stmt: Select,
        keep: Callable[[ModelType], bool] | None = None,
    ) -> list[Any]:
        """Run ``stmt`` and convert each row (optionally filtered by ``keep``) with ``to_dto()``."""
        rows = self.session.execute(stmt).scalars().unique()
        return [row.to_dto() for row in rows if keep is None or keep(row)]
