"""
Service layer for Party operations.

The party store collaborator: registers clients and suppliers, looks them up,
and hands the payment service a row-locked Party for the duration of a
payment transaction.  Public methods return PartyInfo DTOs, not ORM rows.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.dtos import PartyInfo
from settlement_kernel.domain.values import PartyType
from settlement_kernel.exceptions import PartyNotFoundError, PartyTypeMismatchError, ValidationError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.party import Party
from settlement_kernel.services.base import BaseService

logger = get_logger("services.party")


class PartyService(BaseService[Party]):
    """
    Service for managing clients and suppliers.

    Standing credit (``overpaid_amount``) is not writable here; only the
    credit ledger changes it.
    """

    def _get_by_id(self, party_id: UUID) -> Party:
        """Get party by ID, raising if not found."""
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return party

    def lock_for_update(
        self,
        party_id: UUID,
        party_type: PartyType | None = None,
    ) -> Party:
        """
        Load the party row with ``SELECT ... FOR UPDATE``.

        The row lock is held until the caller's transaction ends.  When
        ``party_type`` is given it must match the stored party.

        Raises:
            PartyNotFoundError: unknown party.
            PartyTypeMismatchError: party_type given and different.
        """
        party = self.session.execute(
            self.locked(select(Party).where(Party.id == party_id))
        ).scalar_one_or_none()
        if party is None:
            raise PartyNotFoundError(str(party_id))
        if party_type is not None and party.party_type != party_type:
            raise PartyTypeMismatchError(
                str(party_id),
                expected=party_type.value,
                actual=party.party_type.value,
            )
        return party

    def get_by_id(self, party_id: UUID) -> PartyInfo:
        """
        Get party by ID.

        Raises:
            PartyNotFoundError: If party doesn't exist.
        """
        return self._get_by_id(party_id).to_dto()

    def find_by_name(self, party_type: PartyType, name: str) -> PartyInfo | None:
        stmt = select(Party).where(Party.party_type == party_type, Party.name == name)
        party = self.session.execute(stmt).scalar_one_or_none()
        return party.to_dto() if party else None

    def list_by_type(self, party_type: PartyType) -> list[PartyInfo]:
        stmt = select(Party).where(Party.party_type == party_type).order_by(Party.name)
        return [p.to_dto() for p in self.session.execute(stmt).scalars()]

    def create_party(self, party_type: PartyType, name: str) -> PartyInfo:
        """
        Create a new client or supplier with no standing credit.

        Raises:
            ValidationError: blank name.
        """
        if not name or not name.strip():
            raise ValidationError("name is required", field="name")
        party = Party(party_type=party_type, name=name.strip())
        self.session.add(party)
        self.session.flush()
        logger.info(
            "party_created",
            extra={"party_id": str(party.id), "party_type": party_type.value},
        )
        return party.to_dto()

    def register_client(self, name: str) -> PartyInfo:
        return self.create_party(PartyType.CLIENT, name)

    def register_supplier(self, name: str) -> PartyInfo:
        return self.create_party(PartyType.SUPPLIER, name)
