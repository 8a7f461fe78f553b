"""
Pure domain layer.

Status vocabularies and transition tables, qualification policy constants,
the injectable clock, and the frozen DTOs handed across the service
boundary.  No ORM, database or I/O dependencies.
"""

from tenancy_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from tenancy_kernel.domain.dtos import (
    LeaseInfo,
    LeaseTerms,
    OccupancyKey,
    PropertyInfo,
    TenantInfo,
    UnitInfo,
)
from tenancy_kernel.domain.policy import DEFAULT_POLICY, QualificationPolicy

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "LeaseInfo",
    "LeaseTerms",
    "OccupancyKey",
    "PropertyInfo",
    "TenantInfo",
    "UnitInfo",
    "DEFAULT_POLICY",
    "QualificationPolicy",
]
