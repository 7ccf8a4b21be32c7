# factopay_app/models/user.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(180), unique=True, nullable=False, index=True)
    phone_number = db.Column(db.String(20))
    is_admin = db.Column(db.Boolean, default=False)
    active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    payment_orders = db.relationship(
        "PaymentOrder", back_populates="user", lazy="dynamic", foreign_keys="PaymentOrder.user_id"
    )

    def summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "phoneNumber": self.phone_number}
