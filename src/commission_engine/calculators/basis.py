"""Calculation basis records stored with each ledger entry.

Each basis is tagged with a ``kind`` and carries exactly the numbers needed
to reproduce the entry's amount without reading any other table:

- closer / setter: ``basis_amount * rate``
- referrer: ``flat_fee``
- coach: ``(net_pool - other_commissions) * rate``

``extra`` is an open map for forward-compatible fields (calculation id,
engine version) that never participate in the amount.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, ClassVar, Union
from uuid import UUID

from commission_engine.calculators.types import money


@dataclass(frozen=True)
class CloserBasis:
    """Closer commission on the gross amount."""

    kind: ClassVar[str] = "closer"

    rate: Decimal
    basis_amount: Decimal
    split_percentage: Decimal | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def reproduce(self) -> Decimal:
        return money(self.basis_amount * self.rate)


@dataclass(frozen=True)
class SetterBasis:
    """Appointment setter commission on the gross amount."""

    kind: ClassVar[str] = "setter"

    rate: Decimal
    basis_amount: Decimal
    extra: dict[str, Any] = field(default_factory=dict)

    def reproduce(self) -> Decimal:
        return money(self.basis_amount * self.rate)


@dataclass(frozen=True)
class ReferrerBasis:
    """One-time referral bonus."""

    kind: ClassVar[str] = "referrer"

    flat_fee: Decimal
    is_first_payment: bool = True
    extra: dict[str, Any] = field(default_factory=dict)

    def reproduce(self) -> Decimal:
        return money(self.flat_fee)


@dataclass(frozen=True)
class CoachBasis:
    """Coach residual on what remains of the net pool."""

    kind: ClassVar[str] = "coach"

    rate: Decimal
    rate_source: str
    net_pool: Decimal
    other_commissions: Decimal
    coach_id: UUID
    lead_source: str
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def remainder(self) -> Decimal:
        return self.net_pool - self.other_commissions

    def reproduce(self) -> Decimal:
        return money(self.remainder * self.rate)


CalculationBasis = Union[CloserBasis, SetterBasis, ReferrerBasis, CoachBasis]

_BASIS_TYPES: dict[str, type] = {
    CloserBasis.kind: CloserBasis,
    SetterBasis.kind: SetterBasis,
    ReferrerBasis.kind: ReferrerBasis,
    CoachBasis.kind: CoachBasis,
}


def basis_to_dict(basis: CalculationBasis) -> dict[str, Any]:
    """Serialize a basis to a JSON-compatible dict with its kind tag."""
    data: dict[str, Any] = {"kind": basis.kind}
    if isinstance(basis, (CloserBasis, SetterBasis)):
        data["rate"] = str(basis.rate)
        data["basis_amount"] = str(basis.basis_amount)
        if isinstance(basis, CloserBasis):
            data["split_percentage"] = (
                None if basis.split_percentage is None else str(basis.split_percentage)
            )
    elif isinstance(basis, ReferrerBasis):
        data["flat_fee"] = str(basis.flat_fee)
        data["is_first_payment"] = basis.is_first_payment
    elif isinstance(basis, CoachBasis):
        data["rate"] = str(basis.rate)
        data["rate_source"] = basis.rate_source
        data["net_pool"] = str(basis.net_pool)
        data["other_commissions"] = str(basis.other_commissions)
        data["remainder"] = str(basis.remainder)
        data["coach_id"] = str(basis.coach_id)
        data["lead_source"] = basis.lead_source
    data["extra"] = dict(basis.extra)
    return data


def basis_from_dict(data: dict[str, Any]) -> CalculationBasis:
    """Rebuild a basis from its stored form.

    Raises:
        ValueError: If the kind tag is unknown
    """
    kind = data.get("kind")
    if kind not in _BASIS_TYPES:
        raise ValueError(f"Unknown calculation basis kind: {kind!r}")

    extra = dict(data.get("extra") or {})
    if kind == CloserBasis.kind:
        pct = data.get("split_percentage")
        return CloserBasis(
            rate=Decimal(data["rate"]),
            basis_amount=Decimal(data["basis_amount"]),
            split_percentage=None if pct is None else Decimal(pct),
            extra=extra,
        )
    if kind == SetterBasis.kind:
        return SetterBasis(
            rate=Decimal(data["rate"]),
            basis_amount=Decimal(data["basis_amount"]),
            extra=extra,
        )
    if kind == ReferrerBasis.kind:
        return ReferrerBasis(
            flat_fee=Decimal(data["flat_fee"]),
            is_first_payment=bool(data.get("is_first_payment", True)),
            extra=extra,
        )
    return CoachBasis(
        rate=Decimal(data["rate"]),
        rate_source=data["rate_source"],
        net_pool=Decimal(data["net_pool"]),
        other_commissions=Decimal(data["other_commissions"]),
        coach_id=UUID(data["coach_id"]),
        lead_source=data["lead_source"],
        extra=extra,
    )
