# factopay_app/decorators.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from functools import wraps
from flask import session

from .errors import AdminRequired, AuthenticationRequired

def current_identity() -> dict:
    """Identity placed in the session by the auth service: {"id", "email", "is_admin"}."""
    user = session.get("user")
    if not user or not user.get("id"):
        raise AuthenticationRequired("Login required")
    return user

def login_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        current_identity()
        return view_func(*args, **kwargs)
    return wrapper

def admin_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        user = current_identity()
        if not user.get("is_admin"):
            raise AdminRequired("Admin access required")
        return view_func(*args, **kwargs)
    return wrapper
