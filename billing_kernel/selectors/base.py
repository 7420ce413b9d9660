"""
Module: billing_kernel.selectors.base
Responsibility: Base class for read-only query objects over billing tables.
Architecture position: Kernel > Selectors.  Imports db/base.py only.

Invariants enforced:
    - Selectors read through a caller-owned Session and never add, delete,
      flush or commit.
    - Results leave the selector as frozen DTOs, not ORM instances, so they
      stay valid after the caller closes the session.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from billing_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    def __init__(self, session: Session):
        self.session = session
