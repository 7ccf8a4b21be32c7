# factopay_app/models/catalog.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

class CatalogItem(db.Model):
    """Read-only price list; the catalog service owns these rows."""
    __tablename__ = "catalog_items"

    id = db.Column(db.Integer, primary_key=True)
    item_type = db.Column(db.String(16), nullable=False)        # course, service
    item_id = db.Column(db.String(64), nullable=False)          # course id / service code
    title = db.Column(db.String(180), nullable=False, default="")
    price = db.Column(db.Integer, nullable=False, default=0)    # minor units
    active = db.Column(db.Boolean, default=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("item_type", "item_id", name="uq_catalog_items_type_id"),
    )
