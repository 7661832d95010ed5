"""
BaseService -- abstract base for all ledger services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the ledger.  Services receive a SQLAlchemy ``Session``
    and persist with ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  StockOperationService (or
    ``session_scope()`` for catalog edits) owns commit/rollback, so a stock
    command's lot change, movement, total and audit entry commit together.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from reagent_ledger.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all ledger services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``reagent_ledger/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
