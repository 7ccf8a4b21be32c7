# factopay_app/models/__init__.py
# -*- coding: utf-8 -*-
from .user import User
from .catalog import CatalogItem
from .payment_order import PaymentOrder, PaymentOrderItem
from .user_purchase import UserPurchase
from .audit import PaymentAuditLog


__all__ = [
    "User",
    "CatalogItem",
    "PaymentOrder",
    "PaymentOrderItem",
    "UserPurchase",
    "PaymentAuditLog",
]
