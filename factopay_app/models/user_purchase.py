# factopay_app/models/user_purchase.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

class UserPurchase(db.Model):
    """Access granted by a fulfilled order: one row per order item."""
    __tablename__ = "user_purchases"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    item_type = db.Column(db.String(16), nullable=False)   # course, service
    item_id = db.Column(db.String(64), nullable=False, index=True)
    selected_features = db.Column(db.JSON, default=list)
    billing_period = db.Column(db.String(16), nullable=False, default="one_time")
    payment_order_id = db.Column(db.Integer, db.ForeignKey("payment_orders.id"), index=True, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active")   # active, expired, cancelled
    expiry_date = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_user_purchases_user_status", "user_id", "status"),
    )

