"""
Tenancy Kernel

Persistence and domain core for tenants, properties and the leases binding
them:
- Tenant aggregate with its lease ledger
- Property aggregate with per-unit occupancy records
- Optimistic versioning on every aggregate root
- Typed errors and structured logging shared by the outer layers
"""

__version__ = "0.1.0"
