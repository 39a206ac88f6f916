from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class OutboxEvent(db.Model):
    """
    Post-commit follow-up work.

    Written in the same unit of work as the domain change it describes and
    processed after commit. Failures are recorded on the row and never roll
    back the originating operation.

    STATUS: PENDING -> DONE | FAILED (FAILED rows are retried by the CLI).
    """
    __tablename__ = "outbox_events"
    __table_args__ = (
        db.Index("ix_outbox_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    event_type = db.Column(db.String(64), nullable=False)
    aggregate_type = db.Column(db.String(32), nullable=False)
    aggregate_id = db.Column(db.Integer, nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(16), nullable=False, default="PENDING")
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "eventType": self.event_type,
            "aggregateType": self.aggregate_type,
            "aggregateId": self.aggregate_id,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "lastError": self.last_error,
            "createdAt": to_utc_z(self.created_at),
            "processedAt": to_utc_z(self.processed_at),
        }
