"""Read-only selectors returning DTOs."""

from tenancy_kernel.selectors.property_selector import (
    PropertySelector,
    property_to_info,
    unit_to_info,
)
from tenancy_kernel.selectors.tenant_selector import (
    TenantSelector,
    lease_to_info,
    tenant_to_info,
)

__all__ = [
    "PropertySelector",
    "property_to_info",
    "unit_to_info",
    "TenantSelector",
    "lease_to_info",
    "tenant_to_info",
]
