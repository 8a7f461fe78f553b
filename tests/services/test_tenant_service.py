"""
Tests for TenantService: registration, fact maintenance and the status
projection each fact change triggers.
"""

import re
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest

from tenancy_kernel.db.engine import transaction_scope
from tenancy_kernel.domain.statuses import (
    ApplicationStatus,
    QualificationVerdict,
    ReferencingOutcome,
    ReferencingStatus,
)
from tenancy_kernel.exceptions import (
    InvalidAmountError,
    InvalidRentError,
    TenantNotFoundError,
)
from tenancy_kernel.models.tenant import Tenant
from tenancy_engines.qualification import ISSUE_GUARANTOR_MISSING
from tenancy_services.tenant_service import generate_tenant_ref

from tests.conftest import START_TIME

RENT = Decimal("1000.00")


@pytest.fixture
def load_row(session_factory):
    """Read columns that TenantInfo does not expose."""

    def _load(tenant_id, *columns):
        with transaction_scope(session_factory) as session:
            tenant = session.get(Tenant, tenant_id)
            return tuple(getattr(tenant, column) for column in columns)

    return _load


class TestCreateTenant:
    def test_reference_format(self):
        ref = generate_tenant_ref(START_TIME)
        assert re.fullmatch(r"TNT-20250101-[0-9A-F]{8}", ref)

    def test_create(self, tenant_service, test_actor_id, captured_logs):
        tenant = tenant_service.create_tenant(
            test_actor_id, "Ada", "Lovelace", email="ada@example.com",
        )

        assert tenant.owner_id == test_actor_id
        assert tenant.full_name == "Ada Lovelace"
        assert tenant.is_active
        assert tenant.version == 1
        assert tenant.leases == ()
        assert tenant.application_date == START_TIME
        assert tenant.tenant_ref.startswith("TNT-20250101-")
        record = next(r for r in captured_logs() if r["message"] == "tenant_created")
        assert record["tenant_id"] == str(tenant.id)

    @pytest.mark.parametrize("rent", [Decimal("0"), Decimal("-100")])
    def test_invalid_target_rent(self, tenant_service, test_actor_id, rent):
        with pytest.raises(InvalidRentError):
            tenant_service.create_tenant(test_actor_id, "Ada", "Lovelace", target_monthly_rent=rent)

    def test_taken_reference_is_drawn_again(self, tenant_service, test_actor_id, captured_logs):
        refs = iter(["TNT-20250101-0000AAAA", "TNT-20250101-0000AAAA", "TNT-20250101-0000BBBB"])

        with patch(
            "tenancy_services.tenant_service.generate_tenant_ref",
            side_effect=lambda now: next(refs),
        ):
            first = tenant_service.create_tenant(test_actor_id, "Ada", "Lovelace")
            second = tenant_service.create_tenant(test_actor_id, "Alan", "Turing")

        assert first.tenant_ref == "TNT-20250101-0000AAAA"
        assert second.tenant_ref == "TNT-20250101-0000BBBB"
        assert any(r["message"] == "tenant_ref_collision" for r in captured_logs())


class TestFactUpdates:
    def test_each_update_bumps_version(self, tenant_service, create_tenant, test_actor_id):
        tenant = create_tenant(qualified=False)

        updated = tenant_service.update_income(
            tenant.id, test_actor_id, gross_monthly_income=Decimal("2800.00"),
        )

        assert updated.version > tenant.version

    def test_negative_amount_rejected(self, tenant_service, create_tenant, read_tenant, test_actor_id):
        tenant = create_tenant(qualified=False)

        with pytest.raises(InvalidAmountError):
            tenant_service.update_income(
                tenant.id, test_actor_id, net_monthly_income=Decimal("-1"),
            )
        with pytest.raises(InvalidAmountError):
            tenant_service.update_affordability(
                tenant.id, test_actor_id, Decimal("2000"), monthly_expenses=Decimal("-5"),
            )

        assert read_tenant(tenant.id) == tenant

    def test_income_fields_are_merged(self, tenant_service, create_tenant, load_row, test_actor_id):
        tenant = create_tenant(qualified=False)
        tenant_service.update_income(tenant.id, test_actor_id, gross_monthly_income=Decimal("3000"))

        tenant_service.update_income(
            tenant.id, test_actor_id, monthly_benefits=Decimal("200"), income_verified=True,
        )

        gross, benefits, verified = load_row(
            tenant.id, "gross_monthly_income", "monthly_benefits", "income_verified",
        )
        assert gross == Decimal("3000")
        assert benefits == Decimal("200")
        assert verified

    def test_right_to_rent_records_document(self, tenant_service, create_tenant, load_row, test_actor_id):
        tenant = create_tenant(qualified=False)

        tenant_service.verify_right_to_rent(tenant.id, test_actor_id, document_type="brp")

        verified, verified_at, document = load_row(
            tenant.id,
            "right_to_rent_verified",
            "right_to_rent_verification_date",
            "right_to_rent_document_type",
        )
        assert verified
        assert verified_at == START_TIME
        assert document == "brp"

    @pytest.mark.parametrize(
        "outcome, status",
        [
            (None, ReferencingStatus.IN_PROGRESS),
            (ReferencingOutcome.PENDING, ReferencingStatus.IN_PROGRESS),
            (ReferencingOutcome.PASS, ReferencingStatus.COMPLETED),
            (ReferencingOutcome.PASS_WITH_CONDITIONS, ReferencingStatus.COMPLETED),
            (ReferencingOutcome.FAIL, ReferencingStatus.FAILED),
        ],
    )
    def test_referencing_status(self, tenant_service, create_tenant, load_row, test_actor_id, outcome, status):
        tenant = create_tenant(qualified=False)

        tenant_service.record_referencing(tenant.id, test_actor_id, outcome, conditions="guarantor")

        (stored_status, conditions) = load_row(
            tenant.id, "referencing_status", "referencing_conditions",
        )
        assert ReferencingStatus(stored_status) == status
        if outcome == ReferencingOutcome.PASS_WITH_CONDITIONS:
            assert conditions == "guarantor"
        else:
            assert conditions is None

    def test_missing_guarantor_rejects(self, tenant_service, create_tenant, test_actor_id):
        tenant = create_tenant(target_monthly_rent=RENT)

        updated = tenant_service.update_guarantor(tenant.id, test_actor_id, required=True)

        assert updated.qualification_verdict == QualificationVerdict.NOT_QUALIFIED
        assert updated.qualification_issues == (ISSUE_GUARANTOR_MISSING,)
        assert updated.application_status == ApplicationStatus.REJECTED

    def test_guarantor_provided_restores_approval(self, tenant_service, create_tenant, test_actor_id):
        tenant = create_tenant(target_monthly_rent=RENT)
        tenant_service.update_guarantor(tenant.id, test_actor_id, required=True)

        updated = tenant_service.update_guarantor(
            tenant.id, test_actor_id, required=True, provided=True, verified=True, name="C. Babbage",
        )

        assert updated.qualification_verdict == QualificationVerdict.QUALIFIED
        assert updated.application_status == ApplicationStatus.APPROVED

    def test_target_rent_changes_basis(self, tenant_service, create_tenant, test_actor_id):
        tenant = create_tenant(target_monthly_rent=RENT)

        updated = tenant_service.set_target_rent(tenant.id, test_actor_id, Decimal("1300.00"))

        assert updated.qualification_rent_basis == Decimal("1300.00")
        assert updated.qualification_verdict == QualificationVerdict.NOT_QUALIFIED

    def test_clearing_target_rent_returns_to_unknown(self, tenant_service, create_tenant, test_actor_id):
        tenant = create_tenant(target_monthly_rent=RENT)

        updated = tenant_service.set_target_rent(tenant.id, test_actor_id, None)

        assert updated.qualification_rent_basis is None
        assert updated.qualification_verdict == QualificationVerdict.UNKNOWN
        assert updated.application_status == ApplicationStatus.PENDING

    def test_invalid_target_rent(self, tenant_service, create_tenant, test_actor_id):
        tenant = create_tenant()
        with pytest.raises(InvalidRentError):
            tenant_service.set_target_rent(tenant.id, test_actor_id, Decimal("0"))

    def test_update_is_logged(self, tenant_service, create_tenant, test_actor_id, captured_logs):
        tenant = create_tenant(qualified=False)

        tenant_service.verify_right_to_rent(tenant.id, test_actor_id)

        record = next(r for r in captured_logs() if r["message"] == "tenant_fact_updated")
        assert record["fact"] == "right_to_rent"
        assert record["tenant_id"] == str(tenant.id)


class TestOwnershipAndDeactivation:
    def test_other_owner_cannot_update(self, tenant_service, create_tenant):
        tenant = create_tenant()
        with pytest.raises(TenantNotFoundError):
            tenant_service.update_income(tenant.id, uuid4(), gross_monthly_income=Decimal("1"))

    def test_unknown_tenant(self, tenant_service, test_actor_id):
        with pytest.raises(TenantNotFoundError):
            tenant_service.verify_right_to_rent(uuid4(), test_actor_id)

    def test_deactivated_tenant_is_read_only(self, tenant_service, create_tenant, test_actor_id):
        tenant = create_tenant()

        deactivated = tenant_service.deactivate(tenant.id, test_actor_id)

        assert not deactivated.is_active
        assert deactivated.application_status == tenant.application_status
        with pytest.raises(TenantNotFoundError):
            tenant_service.update_income(
                tenant.id, test_actor_id, gross_monthly_income=Decimal("5000"),
            )
