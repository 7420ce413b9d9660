"""
billing_scheduler.models -- ORM models for invoice generation persistence.

Architecture: billing_scheduler/models. Imports from billing_kernel only.
"""

from billing_scheduler.models.generation import (
    InvoiceGenerationConfigModel,
    InvoiceGenerationLogModel,
)

__all__ = [
    "InvoiceGenerationConfigModel",
    "InvoiceGenerationLogModel",
]
