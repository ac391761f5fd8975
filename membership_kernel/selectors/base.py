"""
Module: membership_kernel.selectors.base
Responsibility: Common base of the read side.  A selector runs queries in a
    session it is given and hands back frozen domain records.
Architecture position: Kernel > Selectors.  Imports db/, models/ and the
    domain DTOs; never services/.

Invariants enforced:
    - Selectors never add, delete, flush or commit.
    - Selectors never return ORM rows; callers get ``*Info`` records.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from membership_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Read-only access to one model family inside the caller's transaction."""

    def __init__(self, session: Session):
        self.session = session
