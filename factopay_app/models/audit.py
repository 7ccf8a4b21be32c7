# factopay_app/models/audit.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

class PaymentAuditLog(db.Model):
    __tablename__ = "payment_audit_logs"
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("payment_orders.id"), index=True, nullable=True)
    action = db.Column(db.String(40), nullable=False, index=True)   # signature_rejected, transition, transition_replayed, ...
    ref = db.Column(db.String(120))                                 # e.g., payment:pay_x / event:payment.captured
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    @classmethod
    def record(cls, action: str, order_id: int | None = None, ref: str | None = None, description: str = ""):
        """Adds an entry to the current session; the caller decides when to commit."""
        entry = cls(action=action, order_id=order_id, ref=(ref or "")[:120], description=description)
        db.session.add(entry)
        return entry
