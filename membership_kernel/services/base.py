"""
BaseService -- base of the SQL writers.

Writers receive the session of the member lock they run under and only
flush.  The lock's ``session_scope`` commits or rolls back the whole
lifecycle change, so a plan is never half written.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from membership_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Flush-only writer bound to the caller's session."""

    def __init__(self, session: Session):
        self.session = session
