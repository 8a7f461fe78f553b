"""
Qualification policy values (``tenancy_kernel.domain.policy``).

Pure frozen values consumed by the qualification engine.  The income
multiples derive from the UK "annual income of 30x monthly rent" rule:
30 / 12 = 2.5 times the monthly rent, measured on gross income.  When only
take-home pay is known a stricter 3x multiple applies.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

ANNUAL_RENT_MULTIPLE = Decimal("30")
MONTHS_PER_YEAR = Decimal("12")

GROSS_INCOME_MULTIPLE = ANNUAL_RENT_MULTIPLE / MONTHS_PER_YEAR
NET_INCOME_MULTIPLE = Decimal("3.0")


@dataclass(frozen=True)
class QualificationPolicy:
    """Tunable thresholds for tenant qualification."""

    gross_income_multiple: Decimal = GROSS_INCOME_MULTIPLE
    net_income_multiple: Decimal = NET_INCOME_MULTIPLE
    # When True, a "pass with conditions" reference disqualifies instead of
    # sending the tenant to review.
    conditions_block: bool = False

    def __post_init__(self) -> None:
        if self.gross_income_multiple <= 0:
            raise ValueError("gross_income_multiple must be positive")
        if self.net_income_multiple <= 0:
            raise ValueError("net_income_multiple must be positive")


DEFAULT_POLICY = QualificationPolicy()
