"""
Module: tenancy_engines.qualification
Responsibility:
    Decide whether a tenant is eligible to occupy a space at a candidate
    monthly rent.  Five ordered tests (income, affordability, right to rent,
    referencing, guarantor) each produce a check; the checks resolve into one
    verdict plus the ordered list of human-readable issues.

Architecture position:
    Engines -- pure evaluation layer, zero I/O.
    May only import tenancy_kernel domain values, exceptions and logging.

Invariants enforced:
    - Purity and determinism: identical facts, rent and policy always yield
      the same verdict and the same issue order.
    - Every test runs; failures accumulate, nothing short-circuits.
    - Decimal-only arithmetic for every amount.
    - Verdict precedence: NOT_QUALIFIED > UNKNOWN > NEEDS_REVIEW > QUALIFIED.

Failure modes:
    - InvalidRentError when the candidate rent is missing, non-numeric,
      zero, or negative.  Missing tenant facts never raise; they yield an
      UNKNOWN verdict.

Usage:
    from tenancy_engines.qualification import TenantFacts, evaluate

    result = evaluate(
        TenantFacts(gross_monthly_income=Decimal("3000"), right_to_rent_verified=True,
                    referencing_outcome=ReferencingOutcome.PASS),
        Decimal("1000"),
    )
    result.verdict   # QualificationVerdict.QUALIFIED
    result.issues    # ()
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

from tenancy_kernel.domain.policy import DEFAULT_POLICY, QualificationPolicy
from tenancy_kernel.domain.statuses import QualificationVerdict, ReferencingOutcome
from tenancy_kernel.exceptions import InvalidRentError
from tenancy_kernel.logging_config import get_logger
from tenancy_engines.tracer import traced_engine

logger = get_logger("engines.qualification")

ZERO = Decimal("0")

ISSUE_REFERENCING_PENDING = "referencing pending"
ISSUE_RIGHT_TO_RENT = "right to rent not verified"
ISSUE_GUARANTOR_MISSING = "guarantor required but not provided"
ISSUE_REFERENCING_FAILED = "referencing failed"
ISSUE_INCOME_MISSING = "income not recorded"
ISSUE_AFFORDABILITY_MISSING = "no income recorded for affordability assessment"


class CheckOutcome(str, Enum):
    """Outcome of one qualification test."""

    PASSED = "passed"
    PASSED_WITH_CONDITIONS = "passed-with-conditions"
    PENDING = "pending"
    MISSING = "missing"
    FAILED = "failed"


@dataclass(frozen=True)
class TenantFacts:
    """
    Eligibility-relevant facts of one tenant.

    Every amount is monthly.  ``None`` means "not recorded".
    """

    gross_monthly_income: Decimal | None = None
    net_monthly_income: Decimal | None = None
    monthly_benefits: Decimal | None = None
    affordability_monthly_income: Decimal | None = None
    affordability_monthly_expenses: Decimal | None = None
    affordability_monthly_commitments: Decimal | None = None
    right_to_rent_verified: bool = False
    referencing_outcome: ReferencingOutcome | None = None
    referencing_conditions: str | None = None
    guarantor_required: bool = False
    guarantor_provided: bool = False


@dataclass(frozen=True)
class QualificationCheck:
    """
    Result of one test.

    Guarantees:
        - ``issue`` is None iff outcome is PASSED.
        - ``disqualifying`` implies outcome FAILED.
    """

    name: str
    outcome: CheckOutcome
    disqualifying: bool = False
    issue: str | None = None


@dataclass(frozen=True)
class QualificationResult:
    """Verdict, ordered issues and the per-test breakdown."""

    verdict: QualificationVerdict
    issues: tuple[str, ...]
    checks: tuple[QualificationCheck, ...]
    candidate_monthly_rent: Decimal

    @property
    def status(self) -> QualificationVerdict:
        return self.verdict

    @property
    def is_qualified(self) -> bool:
        return self.verdict == QualificationVerdict.QUALIFIED


def normalize_rent(candidate_monthly_rent: object) -> Decimal:
    """
    Coerce a candidate rent to a positive Decimal.

    Raises:
        InvalidRentError: if the value is missing, not a finite number, or
            not strictly positive.
    """
    if candidate_monthly_rent is None or isinstance(candidate_monthly_rent, bool):
        raise InvalidRentError(candidate_monthly_rent)
    try:
        rent = Decimal(str(candidate_monthly_rent))
    except (InvalidOperation, ValueError):
        raise InvalidRentError(candidate_monthly_rent) from None
    if not rent.is_finite() or rent <= ZERO:
        raise InvalidRentError(candidate_monthly_rent)
    return rent


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def check_income(facts: TenantFacts, rent: Decimal, policy: QualificationPolicy) -> QualificationCheck:
    """Gross income plus benefits against the gross multiple, else net against the net multiple."""
    benefits = facts.monthly_benefits or ZERO
    if facts.gross_monthly_income is not None:
        basis, income, multiple = "gross", facts.gross_monthly_income, policy.gross_income_multiple
    elif facts.net_monthly_income is not None:
        basis, income, multiple = "net", facts.net_monthly_income, policy.net_income_multiple
    else:
        return QualificationCheck("income", CheckOutcome.MISSING, issue=ISSUE_INCOME_MISSING)

    qualifying = income + benefits
    required = rent * multiple
    if qualifying >= required:
        return QualificationCheck("income", CheckOutcome.PASSED)
    return QualificationCheck(
        "income",
        CheckOutcome.FAILED,
        disqualifying=True,
        issue=(
            f"{basis} income {_money(qualifying)} below required "
            f"{_money(required)} ({multiple}x rent)"
        ),
    )


def check_affordability(facts: TenantFacts, rent: Decimal) -> QualificationCheck:
    """Disposable income (income - expenses - commitments) must cover the rent."""
    income = facts.affordability_monthly_income
    if income is None:
        income = facts.gross_monthly_income
    if income is None:
        income = facts.net_monthly_income
    if income is None:
        return QualificationCheck(
            "affordability", CheckOutcome.MISSING, issue=ISSUE_AFFORDABILITY_MISSING,
        )

    disposable = (
        income
        - (facts.affordability_monthly_expenses or ZERO)
        - (facts.affordability_monthly_commitments or ZERO)
    )
    if disposable >= rent:
        return QualificationCheck("affordability", CheckOutcome.PASSED)
    return QualificationCheck(
        "affordability",
        CheckOutcome.FAILED,
        disqualifying=True,
        issue=f"disposable income {_money(disposable)} below rent {_money(rent)}",
    )


def check_right_to_rent(facts: TenantFacts) -> QualificationCheck:
    if facts.right_to_rent_verified:
        return QualificationCheck("right_to_rent", CheckOutcome.PASSED)
    return QualificationCheck(
        "right_to_rent", CheckOutcome.FAILED, disqualifying=True, issue=ISSUE_RIGHT_TO_RENT,
    )


def check_referencing(facts: TenantFacts, policy: QualificationPolicy) -> QualificationCheck:
    outcome = ReferencingOutcome(facts.referencing_outcome) if facts.referencing_outcome else None

    if outcome == ReferencingOutcome.PASS:
        return QualificationCheck("referencing", CheckOutcome.PASSED)

    if outcome == ReferencingOutcome.PASS_WITH_CONDITIONS:
        issue = "referencing passed with conditions"
        if facts.referencing_conditions:
            issue = f"{issue}: {facts.referencing_conditions}"
        if policy.conditions_block:
            return QualificationCheck(
                "referencing", CheckOutcome.FAILED, disqualifying=True, issue=issue,
            )
        return QualificationCheck("referencing", CheckOutcome.PASSED_WITH_CONDITIONS, issue=issue)

    if outcome == ReferencingOutcome.FAIL:
        return QualificationCheck(
            "referencing", CheckOutcome.FAILED, disqualifying=True, issue=ISSUE_REFERENCING_FAILED,
        )

    return QualificationCheck("referencing", CheckOutcome.PENDING, issue=ISSUE_REFERENCING_PENDING)


def check_guarantor(facts: TenantFacts) -> QualificationCheck:
    if facts.guarantor_required and not facts.guarantor_provided:
        return QualificationCheck(
            "guarantor", CheckOutcome.FAILED, disqualifying=True, issue=ISSUE_GUARANTOR_MISSING,
        )
    return QualificationCheck("guarantor", CheckOutcome.PASSED)


def resolve_verdict(checks: tuple[QualificationCheck, ...]) -> QualificationVerdict:
    """NOT_QUALIFIED > UNKNOWN > NEEDS_REVIEW > QUALIFIED."""
    if any(c.disqualifying for c in checks):
        return QualificationVerdict.NOT_QUALIFIED
    if any(c.outcome == CheckOutcome.MISSING for c in checks):
        return QualificationVerdict.UNKNOWN
    if any(
        c.outcome in (CheckOutcome.PENDING, CheckOutcome.PASSED_WITH_CONDITIONS)
        for c in checks
    ):
        return QualificationVerdict.NEEDS_REVIEW
    return QualificationVerdict.QUALIFIED


@traced_engine(
    "qualification",
    "1.0",
    fingerprint_fields=("facts", "candidate_monthly_rent", "policy"),
)
def evaluate(
    facts: TenantFacts,
    candidate_monthly_rent: Decimal,
    policy: QualificationPolicy = DEFAULT_POLICY,
) -> QualificationResult:
    """
    Evaluate ``facts`` against ``candidate_monthly_rent``.

    Raises:
        InvalidRentError: if the rent is not a positive amount.
    """
    rent = normalize_rent(candidate_monthly_rent)

    checks = (
        check_income(facts, rent, policy),
        check_affordability(facts, rent),
        check_right_to_rent(facts),
        check_referencing(facts, policy),
        check_guarantor(facts),
    )
    verdict = resolve_verdict(checks)
    issues = tuple(c.issue for c in checks if c.issue is not None)

    logger.debug(
        "qualification_evaluated",
        extra={
            "verdict": verdict.value,
            "issue_count": len(issues),
            "candidate_monthly_rent": str(rent),
        },
    )
    return QualificationResult(
        verdict=verdict,
        issues=issues,
        checks=checks,
        candidate_monthly_rent=rent,
    )
