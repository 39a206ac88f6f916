# Overview: Optional-transaction strategy for stock-affecting workflows.

"""
Unit of work

Sale, reception and manual stock movements mutate several rows (document,
product quantity/cost, stock movement) that should change together. Some
deployments cannot run multi-statement transactions, so the strategy is
chosen once at startup:

- TransactionalUnitOfWork: all writes of one call commit together; any
  failure rolls everything back. Concurrency conflicts retry the whole call.
- BestEffortUnitOfWork: each checkpoint commits immediately. A failure only
  rolls back writes since the last checkpoint; the stock ledger compensates by
  re-reading quantities right before each write and rejecting negatives.

Workflows receive the unit of work as their only positional argument:

    def _op(uow):
        ...
        uow.checkpoint()
        ...
    result = get_unit_of_work().run(_op)
"""

from __future__ import annotations

from flask import Flask, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from .concurrency import run_with_retry


class UnitOfWork:
    mode = "abstract"
    transactional = False

    def run(self, func):
        raise NotImplementedError

    def checkpoint(self) -> None:
        raise NotImplementedError

    def _execute(self, func):
        try:
            result = func(self)
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    def __repr__(self) -> str:
        return f"<{type(self).__name__} mode={self.mode}>"


class TransactionalUnitOfWork(UnitOfWork):
    mode = "transactional"
    transactional = True

    def __init__(self, *, attempts: int = 3, backoff_base: float = 0.05):
        self.attempts = attempts
        self.backoff_base = backoff_base

    def run(self, func):
        return run_with_retry(
            lambda: self._execute(func),
            attempts=self.attempts,
            backoff_base=self.backoff_base,
        )

    def checkpoint(self) -> None:
        db.session.flush()


class BestEffortUnitOfWork(UnitOfWork):
    mode = "best_effort"

    def run(self, func):
        # No retry: earlier checkpoints are already committed.
        return self._execute(func)

    def checkpoint(self) -> None:
        db.session.commit()


def _engine_supports_transactions() -> bool:
    try:
        with db.engine.connect() as conn:
            trans = conn.begin()
            trans.rollback()
        return True
    except (SQLAlchemyError, NotImplementedError):
        return False


def select_unit_of_work(app: Flask) -> UnitOfWork:
    """
    Pick the strategy once per application from STOCK_TRANSACTIONS.

    "off" -> best effort, "on" -> transactional (startup fails when the
    engine refuses transactions), "auto" -> try a transaction and fall back.
    """
    setting = str(app.config.get("STOCK_TRANSACTIONS", "auto")).lower()

    if setting == "off":
        uow = BestEffortUnitOfWork()
    elif setting == "on":
        if not _engine_supports_transactions():
            raise RuntimeError("STOCK_TRANSACTIONS=on but the database refused to open a transaction")
        uow = TransactionalUnitOfWork()
    elif setting == "auto":
        if _engine_supports_transactions():
            uow = TransactionalUnitOfWork()
        else:
            app.logger.warning("Database transactions unavailable; stock workflows use sequential writes")
            uow = BestEffortUnitOfWork()
    else:
        raise RuntimeError(f"Invalid STOCK_TRANSACTIONS value: {setting!r} (expected auto, on or off)")

    app.extensions["unit_of_work"] = uow
    app.logger.info("Stock unit of work: %s", uow.mode)
    return uow


def get_unit_of_work() -> UnitOfWork:
    return current_app.extensions["unit_of_work"]
