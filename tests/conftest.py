# tests/conftest.py
# -*- coding: utf-8 -*-
import os
import sys
import json
import uuid
import pathlib
import tempfile

import pytest
from razorpay.errors import BadRequestError, ServerError
from sqlalchemy import event


# =====================================================================================
# Project location (makes sure "factopay_app" and "config" are importable)
# =====================================================================================
def _add_project_root():
    here = pathlib.Path(__file__).resolve()
    for candidate in [here.parent, *here.parents]:
        if (candidate / "factopay_app").is_dir():
            if str(candidate) not in sys.path:
                sys.path.insert(0, str(candidate))
            return candidate
    return None


PROJECT_ROOT = _add_project_root()

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("SECRET_KEY", "testing-secret")

KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"


def _set_sqlite_pragmas(dbapi_conn, _conn_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


# =====================================================================================
# Flask app on a temporary SQLite file, schema created once per session
# =====================================================================================
@pytest.fixture(scope="session")
def app():
    from config import TestingConfig
    from factopay_app import create_app
    from factopay_app.extensions import db

    fd, db_path = tempfile.mkstemp(prefix="factopay_test_", suffix=".sqlite")
    os.close(fd)

    app = create_app(TestingConfig, overrides={
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}?check_same_thread=0&timeout=30",
        "RAZORPAY_KEY_ID": "rzp_test_key",
        "RAZORPAY_KEY_SECRET": KEY_SECRET,
        "RAZORPAY_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "GATEWAY_BACKOFF": 0.0,
    })

    with app.app_context():
        event.listen(db.engine, "connect", _set_sqlite_pragmas)
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()
    try:
        os.remove(db_path)
    except OSError:
        pass


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    from factopay_app.extensions import db
    with app.app_context():
        try:
            yield db.session
        finally:
            db.session.rollback()
            db.session.close()
            # the schema is shared by the whole session: empty it between tests
            with db.engine.begin() as conn:
                for table in reversed(db.metadata.sorted_tables):
                    conn.execute(table.delete())


# =====================================================================================
# Fake Razorpay SDK: no network, scripted answers
# =====================================================================================
class LostResponse:
    """Queued answer: the call goes through at the gateway, then ``error`` is raised."""

    def __init__(self, error):
        self.error = error


class _Orders:
    def __init__(self, fake):
        self.fake = fake

    def create(self, data=None, **kwargs):
        return self.fake.answer(
            "order.create", None, data, kwargs,
            lambda: {"id": f"order_{uuid.uuid4().hex[:14]}", "status": "created", **(data or {})},
        )


class _Payments:
    def __init__(self, fake):
        self.fake = fake

    def refund(self, payment_id, data=None, **kwargs):
        def made():
            refund = {"id": f"rfnd_{uuid.uuid4().hex[:14]}", "payment_id": payment_id,
                      "amount": (data or {}).get("amount"), "status": "processed"}
            self.fake.refunds.setdefault(payment_id, []).append(refund)
            return refund
        return self.fake.answer("payment.refund", payment_id, data, kwargs, made)

    def fetch_multiple_refund(self, payment_id, data=None, **kwargs):
        return self.fake.answer(
            "payment.fetch_multiple_refund", payment_id, data, kwargs,
            lambda: {"entity": "collection", "items": list(self.fake.refunds.get(payment_id, []))},
        )


class FakeRazorpay:
    """Stands in for razorpay.Client inside RazorpayClient."""

    def __init__(self):
        self.calls = []
        self.queued = []
        self.refunds = {}
        self.order = _Orders(self)
        self.payment = _Payments(self)

    def queue(self, *answers):
        """Each entry: an int HTTP status (mapped the way the SDK maps it), an
        exception instance, a LostResponse or a dict body."""
        self.queued.extend(answers)

    def answer(self, name, target, data, kwargs, default):
        self.calls.append({"name": name, "target": target, "data": data, "timeout": kwargs.get("timeout")})
        if not self.queued:
            return default()
        nxt = self.queued.pop(0)
        if isinstance(nxt, int):
            if nxt >= 500:
                raise ServerError(f"status {nxt}")
            raise BadRequestError(f"status {nxt}")
        if isinstance(nxt, LostResponse):
            default()
            raise nxt.error
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


@pytest.fixture
def lost_response():
    return LostResponse


@pytest.fixture(autouse=True)
def fake_gateway(app, monkeypatch):
    fake = FakeRazorpay()
    monkeypatch.setattr(app.extensions["gateway"], "sdk", fake)
    monkeypatch.setattr(app.extensions["gateway"], "_sleep", lambda s: None)
    yield fake


# =====================================================================================
# Users and logged-in clients
# =====================================================================================
@pytest.fixture
def user_normal(db_session):
    from factopay_app.models.user import User
    u = User(name="User", email=f"user+{uuid.uuid4().hex[:6]}@test.com")
    db_session.add(u); db_session.commit()
    return u


@pytest.fixture
def user_admin(db_session):
    from factopay_app.models.user import User
    u = User(name="Admin", email=f"admin+{uuid.uuid4().hex[:6]}@test.com", is_admin=True)
    db_session.add(u); db_session.commit()
    return u


@pytest.fixture
def logged_client_user(client, user_normal):
    with client.session_transaction() as sess:
        sess["user"] = {"id": user_normal.id, "email": user_normal.email, "is_admin": False}
    return client


@pytest.fixture
def logged_client_admin(app, user_admin):
    c = app.test_client()
    with c.session_transaction() as sess:
        sess["user"] = {"id": user_admin.id, "email": user_admin.email, "is_admin": True}
    return c


# =====================================================================================
# Catalog + order factories
# =====================================================================================
CATALOG = [
    ("service", "gst-filing", "GST filing", 1000),
    ("service", "itr-basic", "ITR basic", 2500),
    ("course", "tax-101", "Tax 101", 49900),
    ("service", "free-consult", "Free consultation", 0),
]


@pytest.fixture
def catalog(db_session):
    from factopay_app.models.catalog import CatalogItem
    rows = {}
    for item_type, item_id, title, price in CATALOG:
        row = CatalogItem.query.filter_by(item_type=item_type, item_id=item_id).first()
        if not row:
            row = CatalogItem(item_type=item_type, item_id=item_id, title=title, price=price, active=True)
            db_session.add(row)
        rows[item_id] = row
    db_session.commit()
    return rows


@pytest.fixture
def make_order(db_session, user_normal):
    """Stores an order straight in the DB (no gateway call)."""
    from factopay_app.models.payment_order import PaymentOrder, PaymentOrderItem

    def _make(user=None, status="pending", consultation=False, consultation_price=None, items=None, **extra):
        items = items or [{"item_type": "service", "item_id": "gst-filing", "price": 1000,
                           "billing_period": "quarterly", "selected_features": ["returns"]}]
        order = PaymentOrder(
            receipt=f"rcpt_{uuid.uuid4().hex}",
            user_id=(user or user_normal).id,
            amount=sum(i["price"] for i in items),
            currency="INR",
            status=status,
            payment_method="consultation" if consultation else "razorpay",
            gateway_order_id=None if consultation else f"order_{uuid.uuid4().hex[:14]}",
            is_consultation_payment=consultation,
            consultation_price=consultation_price,
            items=[PaymentOrderItem(position=i, **it) for i, it in enumerate(items)],
            **extra,
        )
        db_session.add(order); db_session.commit()
        return order

    return _make


# =====================================================================================
# Signing helpers
# =====================================================================================
@pytest.fixture
def sign_payment():
    from factopay_app.services.signatures import compute_signature
    return lambda order_id, payment_id: compute_signature(KEY_SECRET, f"{order_id}|{payment_id}")


@pytest.fixture
def webhook():
    """Builds (raw_body, headers) for a signed Razorpay delivery."""
    from factopay_app.services.signatures import compute_signature

    def _build(event_name, gateway_order_id=None, payment_id=None, signature=None, **extra):
        payload = {"entity": "event", "event": event_name, "payload": {}}
        if event_name in ("payment.captured", "payment.failed", "order.paid", "refund.processed"):
            payload["payload"]["payment"] = {"entity": {
                "id": payment_id, "order_id": gateway_order_id, "method": "upi",
                "status": "captured" if event_name != "payment.failed" else "failed",
                "error_description": extra.get("reason"),
            }}
        if event_name == "order.paid":
            payload["payload"]["order"] = {"entity": {"id": gateway_order_id, "status": "paid"}}
        if event_name == "refund.processed":
            payload["payload"]["refund"] = {"entity": {
                "id": extra.get("refund_id", "rfnd_test"), "payment_id": payment_id,
            }}
        raw = json.dumps(payload).encode("utf-8")
        sig = signature if signature is not None else compute_signature(WEBHOOK_SECRET, raw)
        return raw, {"X-Razorpay-Signature": sig, "Content-Type": "application/json"}

    return _build
