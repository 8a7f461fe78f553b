"""Domain models for the tenancy kernel."""

from tenancy_kernel.models.consistency_issue import ConsistencyIssue, issue_key
from tenancy_kernel.models.property import OccupancyRecord, Property, Unit
from tenancy_kernel.models.tenant import Lease, Tenant, space_key

__all__ = [
    "ConsistencyIssue",
    "issue_key",
    "OccupancyRecord",
    "Property",
    "Unit",
    "Lease",
    "Tenant",
    "space_key",
]
