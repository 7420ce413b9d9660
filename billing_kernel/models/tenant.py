"""
Module: billing_kernel.models.tenant
Responsibility: ORM persistence for tenants -- the customer organisations
    that are billed.  The scheduler only reads tenants; creation and status
    changes happen in the administration flows.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Only tenants with status ACTIVE are eligible for automatic invoice
      generation; the config repository filters on this column.

Failure modes:
    - IntegrityError on a status value longer than the column width.
"""

from enum import Enum

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class TenantStatus(str, Enum):
    """Tenant lifecycle status.

    Contract: Only ACTIVE tenants are billed automatically.  Every other
    status is skipped silently even if the tenant's config is active.
    """

    ACTIVE = "active"
    TRIAL = "trial"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class Tenant(TrackedBase):
    """
    Customer organisation that owns at most one invoice generation config.

    Non-goals:
        - Does NOT validate status transitions; the admin flow owns them.
    """

    __tablename__ = "tenants"

    __table_args__ = (
        Index("idx_tenant_status", "status"),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TenantStatus.ACTIVE.value,
    )

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE.value

    def __repr__(self) -> str:
        return f"<Tenant {self.name} ({self.status})>"
