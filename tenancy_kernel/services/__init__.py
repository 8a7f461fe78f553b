"""Kernel services: flush-only, single-aggregate operations."""

from tenancy_kernel.services.base import BaseService
from tenancy_kernel.services.lease_ledger import LeaseLedger, materialize_terms
from tenancy_kernel.services.occupancy_store import OccupancyStore, ResolvedSpace
from tenancy_kernel.services.property_service import PropertyService

__all__ = [
    "BaseService",
    "LeaseLedger",
    "materialize_terms",
    "OccupancyStore",
    "ResolvedSpace",
    "PropertyService",
]
