# Overview: Post-commit follow-up work (financial stats, invoices) recorded as outbox events.

"""
Outbox Service

Domain workflows call enqueue_event() inside their unit of work, so the
event row commits (or rolls back) together with the domain change.
dispatch_events() runs after commit: each event's handler runs in its own
transaction and the event is marked DONE or FAILED. Handler failures are
logged and stored on the event; they never reach the originating caller.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import OutboxEvent, Sale
from ..time_utils import utcnow
from .customer_service import create_invoice_from_sale, recalculate_financial_stats
from .tenant_service import TenantContext


STATUS_PENDING = "PENDING"
STATUS_DONE = "DONE"
STATUS_FAILED = "FAILED"

SALE_COMMITTED = "sale.committed"


def enqueue_event(
    *,
    company_id: int,
    user_id: int,
    event_type: str,
    aggregate_type: str,
    aggregate_id: int,
    payload: dict | None = None,
) -> OutboxEvent:
    event = OutboxEvent(
        company_id=company_id,
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        payload={"userId": user_id, **(payload or {})},
        status=STATUS_PENDING,
        attempts=0,
    )
    db.session.add(event)
    return event


def _handle_sale_committed(event: OutboxEvent) -> None:
    tenant = TenantContext(company_id=event.company_id, user_id=event.payload.get("userId") or 0)
    sale = db.session.get(Sale, event.aggregate_id)
    if sale is None or sale.company_id != event.company_id:
        raise LookupError(f"sale {event.aggregate_id} not found")
    if sale.customer_id is None:
        return

    customer_id = sale.customer_id
    if sale.payment_method != "CASH":
        create_invoice_from_sale(tenant, sale.id)
    recalculate_financial_stats(tenant, customer_id)


HANDLERS = {
    SALE_COMMITTED: _handle_sale_committed,
}


def process_event(event: OutboxEvent) -> bool:
    """Run one event's handler; True when it succeeded."""
    handler = HANDLERS.get(event.event_type)
    event_id = event.id
    event.attempts = (event.attempts or 0) + 1

    if handler is None:
        event.status = STATUS_FAILED
        event.last_error = f"no handler for {event.event_type}"
        db.session.commit()
        current_app.logger.warning("Outbox event %s has no handler (%s)", event_id, event.event_type)
        return False

    # Attempt is counted even if the handler commits partway and then fails
    db.session.commit()

    try:
        handler(event)
    except Exception as exc:
        db.session.rollback()
        event = db.session.get(OutboxEvent, event_id)
        event.status = STATUS_FAILED
        event.last_error = f"{type(exc).__name__}: {exc}"[:2000]
        db.session.commit()
        current_app.logger.exception("Outbox event %s (%s) failed", event_id, event.event_type)
        return False

    event.status = STATUS_DONE
    event.last_error = None
    event.processed_at = utcnow()
    db.session.commit()
    return True


def dispatch_events(event_ids) -> dict:
    """Process the given events after their unit of work committed."""
    done = failed = 0
    for event_id in event_ids:
        event = db.session.get(OutboxEvent, event_id)
        if event is None or event.status == STATUS_DONE:
            continue
        if process_event(event):
            done += 1
        else:
            failed += 1
    return {"done": done, "failed": failed}


def dispatch_pending(*, include_failed: bool = True, limit: int = 100) -> dict:
    """Re-process pending (and optionally failed) events, oldest first."""
    statuses = [STATUS_PENDING, STATUS_FAILED] if include_failed else [STATUS_PENDING]
    ids = [
        row.id
        for row in db.session.query(OutboxEvent.id)
        .filter(OutboxEvent.status.in_(statuses))
        .order_by(OutboxEvent.id.asc())
        .limit(limit)
        .all()
    ]
    return dispatch_events(ids)
