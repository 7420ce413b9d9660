"""Domain models for the billing kernel."""

from billing_kernel.models.tenant import Tenant, TenantStatus

__all__ = [
    "Tenant",
    "TenantStatus",
]
