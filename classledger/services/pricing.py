"""Pricing snapshots and session-credit arithmetic.

Pure functions only: nothing here touches the database, so the payment,
attendance and roster services all share one definition of what a payment
is worth in sessions and how many sessions a student is liable for.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from classledger.core.exceptions import ValidationFailed
from classledger.models.enums import PricingModel, UnitType

ZERO = Decimal("0")


@dataclass(frozen=True)
class PricingSnapshot:
    """A class's billing terms, copied by value at enrollment time."""

    model: PricingModel
    session_price: Optional[Decimal] = None
    cycle_size: Optional[int] = None
    cycle_price: Optional[Decimal] = None

    @property
    def is_per_session(self) -> bool:
        return self.model == PricingModel.PER_SESSION

    @property
    def has_session_price(self) -> bool:
        return self.session_price is not None and self.session_price > 0

    @property
    def has_cycle_terms(self) -> bool:
        return (
            self.cycle_size is not None
            and self.cycle_size >= 1
            and self.cycle_price is not None
            and self.cycle_price > 0
        )


def build_snapshot(
    model: PricingModel,
    session_price: Optional[Decimal],
    cycle_size: Optional[int],
    cycle_price: Optional[Decimal],
) -> PricingSnapshot:
    """
    Validate a class's pricing configuration and copy out the fields its
    model uses. Fields belonging to the other model are dropped.

    Raises:
        ValidationFailed: If the declared model has no valid price
    """
    if model == PricingModel.PER_SESSION:
        snapshot = PricingSnapshot(model=model, session_price=session_price)
        if not snapshot.has_session_price:
            raise ValidationFailed("Class has no valid session price for per-session billing")
        return snapshot

    if model == PricingModel.PER_CYCLE:
        snapshot = PricingSnapshot(model=model, cycle_size=cycle_size, cycle_price=cycle_price)
        if not snapshot.has_cycle_terms:
            raise ValidationFailed("Class needs a cycle size and a cycle price for per-cycle billing")
        return snapshot

    raise ValidationFailed(f"Unknown pricing model: {model}")


def quantize_credit(value: Decimal, places: int) -> Decimal:
    """Round a session credit to the configured number of decimal places."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def derive_session_credit(
    snapshot: PricingSnapshot,
    amount: Decimal,
    taken: Optional[Decimal] = None,
    units: Optional[Decimal] = None,
    unit_type: Optional[UnitType] = None,
    places: int = 4,
) -> Decimal:
    """
    Number of sessions a payment buys.

    Priority:
      1. ``units`` with a ``unit_type`` (sessions directly, or cycles times
         the snapshot's cycle size when it is known);
      2. cash actually received (``taken``, else ``amount``) divided by the
         per-session price, or by the cycle price times the cycle size;
      3. zero, the payment is still an audit record.

    Fractional results are legitimate partial payments.
    """
    credit = ZERO

    if units is not None and units > 0:
        if unit_type == UnitType.SESSION:
            credit = Decimal(units)
        elif unit_type == UnitType.CYCLE and snapshot.cycle_size:
            credit = Decimal(units) * snapshot.cycle_size

    if credit == ZERO:
        cash = taken if taken is not None else amount
        if snapshot.model == PricingModel.PER_SESSION and snapshot.has_session_price:
            credit = cash / snapshot.session_price
        elif snapshot.model == PricingModel.PER_CYCLE and snapshot.has_cycle_terms:
            credit = cash / snapshot.cycle_price * snapshot.cycle_size

    return quantize_credit(credit, places)


def charged_sessions(attended: int, absent: int, absence_rule: bool) -> int:
    """Sessions a student is liable for: attended, plus absences when the class bills them."""
    return attended + (absent if absence_rule else 0)


def sessions_covered(
    snapshot: PricingSnapshot,
    session_payments: Decimal,
    cycle_payments: Decimal,
) -> int:
    """Whole sessions paid for, from aggregated payment amounts by kind."""
    if snapshot.model == PricingModel.PER_SESSION:
        if not snapshot.has_session_price:
            return 0
        return math.floor(session_payments / snapshot.session_price)

    if not snapshot.has_cycle_terms:
        return 0
    return math.floor(cycle_payments / snapshot.cycle_price) * snapshot.cycle_size


def owed_sessions(charged: int, covered: int) -> int:
    return max(0, charged - covered)


def owed_amount(snapshot: PricingSnapshot, owed: int) -> Optional[Decimal]:
    """Money owed for uncovered sessions; per-cycle debts stay in sessions."""
    if snapshot.model != PricingModel.PER_SESSION or not snapshot.has_session_price:
        return None
    return snapshot.session_price * owed
