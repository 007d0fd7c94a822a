"""
DK Payroll - Deduction Rate Schedule

Effective-dated statutory deduction rates.

Standard rates:
- Provident Fund (PF): 12% of basic earned
- Employee State Insurance (ESI): 0.75% of gross, waived above the ceiling
- Labour Welfare Fund (LWF): flat 31 per period

A rate set applies from its effective date until the next set takes over.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from app.utils.error_handling import InvalidInputException


DEFAULT_PF_RATE = Decimal("12")
DEFAULT_ESI_RATE = Decimal("0.75")
DEFAULT_LWF_AMOUNT = Decimal("31")


@dataclass(frozen=True)
class DeductionRates:
    """Deduction rates effective from a given date. Rates are percentages."""
    effective_from: date
    pf_rate: Decimal = DEFAULT_PF_RATE
    esi_rate: Decimal = DEFAULT_ESI_RATE
    lwf_amount: Decimal = DEFAULT_LWF_AMOUNT

    def validate(self) -> None:
        """Reject negative rates or welfare fund amount."""
        for field_name in ("pf_rate", "esi_rate", "lwf_amount"):
            value = getattr(self, field_name)
            if value < 0:
                raise InvalidInputException(
                    f"{field_name} cannot be negative",
                    field=field_name,
                    value=value,
                )


def select_effective_rates(
    rate_sets: Iterable[DeductionRates],
    on_date: date,
) -> DeductionRates:
    """
    Pick the rate set in force on a date.

    The effective set is the one with the latest effective_from that is
    on or before the date. Two sets sharing that effective_from are
    ambiguous and rejected.

    Raises:
        InvalidInputException: No set is effective yet, or the choice is ambiguous.
    """
    selected: Optional[DeductionRates] = None
    ambiguous = False

    for rates in rate_sets:
        if rates.effective_from > on_date:
            continue
        if selected is None or rates.effective_from > selected.effective_from:
            selected = rates
            ambiguous = False
        elif rates.effective_from == selected.effective_from and rates != selected:
            ambiguous = True

    if selected is None:
        raise InvalidInputException(
            f"No deduction rates are effective on {on_date.isoformat()}",
            field="rates",
            value=on_date.isoformat(),
        )
    if ambiguous:
        raise InvalidInputException(
            f"More than one deduction rate set is effective from {selected.effective_from.isoformat()}",
            field="rates",
            value=selected.effective_from.isoformat(),
        )
    return selected
