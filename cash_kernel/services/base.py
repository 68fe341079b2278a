"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Holds the caller's SQLAlchemy ``Session``.  Services persist with
    ``session.flush()`` and never commit or roll back; the facade owns the
    transaction so that lock, append and summary refresh commit together.

Architecture position:
    Kernel > Services -- imperative shell.  Read-only access belongs in
    ``cash_kernel/selectors/``.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        The service never calls ``session.commit()`` or
        ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
