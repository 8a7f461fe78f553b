"""
Tests for the qualification engine.

Pure function tests: no database, no clock.  Covers each of the five
checks, verdict precedence, issue ordering and rent validation.
"""

from decimal import Decimal

import pytest

from tenancy_kernel.domain.policy import DEFAULT_POLICY, QualificationPolicy
from tenancy_kernel.domain.statuses import QualificationVerdict, ReferencingOutcome
from tenancy_kernel.exceptions import InvalidRentError
from tenancy_engines.qualification import (
    ISSUE_AFFORDABILITY_MISSING,
    ISSUE_GUARANTOR_MISSING,
    ISSUE_INCOME_MISSING,
    ISSUE_REFERENCING_FAILED,
    ISSUE_REFERENCING_PENDING,
    ISSUE_RIGHT_TO_RENT,
    CheckOutcome,
    QualificationCheck,
    TenantFacts,
    check_affordability,
    check_guarantor,
    check_income,
    check_referencing,
    evaluate,
    normalize_rent,
    resolve_verdict,
)

RENT = Decimal("1000.00")


def _facts(**overrides) -> TenantFacts:
    """Qualifying facts at RENT; override individual fields per test."""
    values = dict(
        gross_monthly_income=Decimal("3000.00"),
        affordability_monthly_expenses=Decimal("1500.00"),
        affordability_monthly_commitments=Decimal("500.00"),
        right_to_rent_verified=True,
        referencing_outcome=ReferencingOutcome.PASS,
    )
    values.update(overrides)
    return TenantFacts(**values)


# =============================================================================
# Whole evaluation
# =============================================================================


class TestEvaluate:
    def test_complete_passing_facts_qualify(self):
        result = evaluate(_facts(), RENT)

        assert result.verdict == QualificationVerdict.QUALIFIED
        assert result.issues == ()
        assert result.is_qualified
        assert result.candidate_monthly_rent == RENT
        assert [c.name for c in result.checks] == [
            "income", "affordability", "right_to_rent", "referencing", "guarantor",
        ]

    def test_pending_referencing_needs_review(self):
        result = evaluate(_facts(referencing_outcome=ReferencingOutcome.PENDING), RENT)

        assert result.verdict == QualificationVerdict.NEEDS_REVIEW
        assert result.issues == (ISSUE_REFERENCING_PENDING,)

    def test_unrecorded_referencing_is_pending(self):
        result = evaluate(_facts(referencing_outcome=None), RENT)

        assert result.verdict == QualificationVerdict.NEEDS_REVIEW
        assert result.issues == (ISSUE_REFERENCING_PENDING,)

    def test_failures_accumulate_in_check_order(self):
        facts = _facts(
            gross_monthly_income=Decimal("1000.00"),
            right_to_rent_verified=False,
            referencing_outcome=ReferencingOutcome.FAIL,
            guarantor_required=True,
        )

        result = evaluate(facts, RENT)

        assert result.verdict == QualificationVerdict.NOT_QUALIFIED
        assert len(result.issues) == 5
        assert result.issues[0].startswith("gross income 1000.00 below required 2500.00")
        assert result.issues[1].startswith("disposable income")
        assert result.issues[2:] == (
            ISSUE_RIGHT_TO_RENT, ISSUE_REFERENCING_FAILED, ISSUE_GUARANTOR_MISSING,
        )

    def test_missing_income_is_unknown(self):
        facts = TenantFacts(
            right_to_rent_verified=True,
            referencing_outcome=ReferencingOutcome.PASS,
        )

        result = evaluate(facts, RENT)

        assert result.verdict == QualificationVerdict.UNKNOWN
        assert result.issues == (ISSUE_INCOME_MISSING, ISSUE_AFFORDABILITY_MISSING)

    def test_disqualification_beats_missing_data(self):
        facts = TenantFacts(right_to_rent_verified=False)

        result = evaluate(facts, RENT)

        assert result.verdict == QualificationVerdict.NOT_QUALIFIED
        assert ISSUE_INCOME_MISSING in result.issues
        assert ISSUE_RIGHT_TO_RENT in result.issues

    def test_deterministic_for_identical_inputs(self):
        facts = _facts(referencing_outcome=ReferencingOutcome.PASS_WITH_CONDITIONS)

        first = evaluate(facts, RENT)
        second = evaluate(facts, RENT)

        assert first == second

    def test_accepts_numeric_rent_forms(self):
        assert evaluate(_facts(), 1000).candidate_monthly_rent == RENT
        assert evaluate(_facts(), "1000").candidate_monthly_rent == RENT

    @pytest.mark.parametrize("rent", [None, 0, Decimal("0"), Decimal("-5"), "abc", "NaN", True])
    def test_invalid_rent_raises(self, rent):
        with pytest.raises(InvalidRentError) as exc_info:
            evaluate(_facts(), rent)
        assert exc_info.value.code == "INVALID_RENT"


class TestNormalizeRent:
    def test_returns_decimal(self):
        assert normalize_rent("1250.50") == Decimal("1250.50")

    def test_infinity_rejected(self):
        with pytest.raises(InvalidRentError):
            normalize_rent(Decimal("Infinity"))


# =============================================================================
# Income
# =============================================================================


class TestIncomeCheck:
    def test_gross_at_exact_multiple_passes(self):
        check = check_income(_facts(gross_monthly_income=Decimal("2500.00")), RENT, DEFAULT_POLICY)
        assert check.outcome == CheckOutcome.PASSED
        assert check.issue is None

    def test_gross_one_penny_short_fails(self):
        check = check_income(_facts(gross_monthly_income=Decimal("2499.99")), RENT, DEFAULT_POLICY)

        assert check.outcome == CheckOutcome.FAILED
        assert check.disqualifying
        assert check.issue == "gross income 2499.99 below required 2500.00 (2.5x rent)"

    def test_benefits_count_towards_income(self):
        facts = _facts(
            gross_monthly_income=Decimal("2000.00"),
            monthly_benefits=Decimal("500.00"),
        )
        assert check_income(facts, RENT, DEFAULT_POLICY).outcome == CheckOutcome.PASSED

    def test_net_income_uses_stricter_multiple(self):
        passing = _facts(gross_monthly_income=None, net_monthly_income=Decimal("3000.00"))
        failing = _facts(gross_monthly_income=None, net_monthly_income=Decimal("2900.00"))

        assert check_income(passing, RENT, DEFAULT_POLICY).outcome == CheckOutcome.PASSED
        check = check_income(failing, RENT, DEFAULT_POLICY)
        assert check.outcome == CheckOutcome.FAILED
        assert check.issue.startswith("net income 2900.00 below required 3000.00")

    def test_gross_preferred_over_net(self):
        facts = _facts(
            gross_monthly_income=Decimal("2600.00"),
            net_monthly_income=Decimal("100.00"),
        )
        assert check_income(facts, RENT, DEFAULT_POLICY).outcome == CheckOutcome.PASSED

    def test_missing_income(self):
        facts = _facts(gross_monthly_income=None)
        check = check_income(facts, RENT, DEFAULT_POLICY)

        assert check.outcome == CheckOutcome.MISSING
        assert not check.disqualifying
        assert check.issue == ISSUE_INCOME_MISSING

    def test_custom_multiple(self):
        policy = QualificationPolicy(gross_income_multiple=Decimal("3"))
        check = check_income(_facts(), RENT, policy)
        assert check.outcome == CheckOutcome.PASSED

        strict = QualificationPolicy(gross_income_multiple=Decimal("3.5"))
        assert check_income(_facts(), RENT, strict).outcome == CheckOutcome.FAILED


# =============================================================================
# Affordability
# =============================================================================


class TestAffordabilityCheck:
    def test_disposable_equal_to_rent_passes(self):
        assert check_affordability(_facts(), RENT).outcome == CheckOutcome.PASSED

    def test_disposable_below_rent_fails(self):
        facts = _facts(affordability_monthly_commitments=Decimal("500.01"))
        check = check_affordability(facts, RENT)

        assert check.outcome == CheckOutcome.FAILED
        assert check.issue == "disposable income 999.99 below rent 1000.00"

    def test_assessment_income_preferred(self):
        facts = _facts(affordability_monthly_income=Decimal("2000.00"))
        assert check_affordability(facts, RENT).outcome == CheckOutcome.FAILED

    def test_falls_back_to_net_income(self):
        facts = _facts(gross_monthly_income=None, net_monthly_income=Decimal("3500.00"))
        assert check_affordability(facts, RENT).outcome == CheckOutcome.PASSED

    def test_no_income_anywhere_is_missing(self):
        check = check_affordability(TenantFacts(), RENT)

        assert check.outcome == CheckOutcome.MISSING
        assert check.issue == ISSUE_AFFORDABILITY_MISSING


# =============================================================================
# Referencing and guarantor
# =============================================================================


class TestReferencingCheck:
    def test_conditions_go_to_review(self):
        facts = _facts(
            referencing_outcome=ReferencingOutcome.PASS_WITH_CONDITIONS,
            referencing_conditions="six months rent in advance",
        )
        check = check_referencing(facts, DEFAULT_POLICY)

        assert check.outcome == CheckOutcome.PASSED_WITH_CONDITIONS
        assert check.issue == "referencing passed with conditions: six months rent in advance"
        assert evaluate(facts, RENT).verdict == QualificationVerdict.NEEDS_REVIEW

    def test_conditions_block_policy_disqualifies(self):
        facts = _facts(referencing_outcome=ReferencingOutcome.PASS_WITH_CONDITIONS)
        policy = QualificationPolicy(conditions_block=True)

        check = check_referencing(facts, policy)

        assert check.outcome == CheckOutcome.FAILED
        assert check.disqualifying
        assert evaluate(facts, RENT, policy).verdict == QualificationVerdict.NOT_QUALIFIED

    def test_outcome_accepted_as_string(self):
        facts = _facts(referencing_outcome="fail")
        assert check_referencing(facts, DEFAULT_POLICY).issue == ISSUE_REFERENCING_FAILED


class TestGuarantorCheck:
    def test_not_required(self):
        assert check_guarantor(_facts()).outcome == CheckOutcome.PASSED

    def test_required_and_provided(self):
        facts = _facts(guarantor_required=True, guarantor_provided=True)
        assert check_guarantor(facts).outcome == CheckOutcome.PASSED

    def test_required_but_missing(self):
        facts = _facts(guarantor_required=True)
        check = check_guarantor(facts)

        assert check.disqualifying
        assert check.issue == ISSUE_GUARANTOR_MISSING


# =============================================================================
# Verdict precedence
# =============================================================================


def _check(outcome: CheckOutcome, disqualifying: bool = False) -> QualificationCheck:
    issue = None if outcome == CheckOutcome.PASSED else outcome.value
    return QualificationCheck("x", outcome, disqualifying=disqualifying, issue=issue)


class TestResolveVerdict:
    def test_all_passed(self):
        checks = (_check(CheckOutcome.PASSED),) * 5
        assert resolve_verdict(checks) == QualificationVerdict.QUALIFIED

    def test_missing_beats_pending(self):
        checks = (_check(CheckOutcome.PENDING), _check(CheckOutcome.MISSING))
        assert resolve_verdict(checks) == QualificationVerdict.UNKNOWN

    def test_disqualifying_beats_missing(self):
        checks = (_check(CheckOutcome.MISSING), _check(CheckOutcome.FAILED, disqualifying=True))
        assert resolve_verdict(checks) == QualificationVerdict.NOT_QUALIFIED

    def test_conditions_need_review(self):
        checks = (_check(CheckOutcome.PASSED), _check(CheckOutcome.PASSED_WITH_CONDITIONS))
        assert resolve_verdict(checks) == QualificationVerdict.NEEDS_REVIEW


class TestPolicyValidation:
    def test_default_gross_multiple_is_two_and_a_half(self):
        assert DEFAULT_POLICY.gross_income_multiple == Decimal("2.5")
        assert DEFAULT_POLICY.net_income_multiple == Decimal("3.0")

    @pytest.mark.parametrize("field", ["gross_income_multiple", "net_income_multiple"])
    def test_non_positive_multiple_rejected(self, field):
        with pytest.raises(ValueError):
            QualificationPolicy(**{field: Decimal("0")})
