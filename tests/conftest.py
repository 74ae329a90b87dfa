from datetime import datetime, timedelta

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from auth import create_token
from config import Settings
from database import ensure_indexes
from main import create_app
from orders import OrderService
from schemas import NewOrder

JWT_SECRET = "test-secret"


class RecordingNotifier:
    def __init__(self, ok=True):
        self.ok = ok
        self.sent = []

    def send_order_confirmation(self, email, data):
        self.sent.append((email, data))
        if self.ok:
            return True, None
        return False, "mail server down"


class Clock:
    def __init__(self, start=datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def order_payload(items, total, payment_id="pay_1", payment_status="succeeded"):
    return {
        "shippingInfo": {
            "address": "12 Market Street",
            "city": "Pune",
            "state": "MH",
            "country": "IN",
            "pincode": "411001",
            "phoneNo": "9000000000",
        },
        "orderItems": [
            {"product": str(product), "name": f"Item {i}", "price": price, "quantity": qty}
            for i, (product, qty, price) in enumerate(items)
        ],
        "paymentInfo": {"id": payment_id, "status": payment_status},
        "totalPrice": total,
    }


def new_order(items, total, **kwargs):
    return NewOrder.model_validate(order_payload(items, total, **kwargs))


@pytest.fixture
def db():
    database = mongomock.MongoClient()["orders_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def users(db):
    docs = {
        "customer": {"_id": ObjectId(), "name": "Asha", "email": "asha@example.com", "role": "user"},
        "other": {"_id": ObjectId(), "name": "Ravi", "email": "ravi@example.com", "role": "user"},
        "admin": {"_id": ObjectId(), "name": "Admin", "email": "admin@example.com", "role": "admin"},
        "vendor": {"_id": ObjectId(), "name": "Shop One", "email": "shop1@example.com", "role": "vendor"},
        "rival": {"_id": ObjectId(), "name": "Shop Two", "email": "shop2@example.com", "role": "vendor"},
    }
    db["users"].insert_many(list(docs.values()))
    return docs


@pytest.fixture
def products(db, users):
    docs = {
        "p1": {"_id": ObjectId(), "name": "Kettle", "price": 5, "stock": 5, "vendor": users["vendor"]["_id"]},
        "p2": {"_id": ObjectId(), "name": "Toaster", "price": 10, "stock": 10, "vendor": users["vendor"]["_id"]},
        "p3": {"_id": ObjectId(), "name": "Lamp", "price": 7, "stock": 4, "vendor": users["rival"]["_id"]},
    }
    db["products"].insert_many(list(docs.values()))
    return docs


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def service(db, notifier, clock):
    return OrderService(db, notifier, clock=clock)


@pytest.fixture
def client(db, notifier):
    app = create_app(Settings(jwt_secret=JWT_SECRET), db=db, notifier=notifier)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(users):
    def headers(name):
        token = create_token(str(users[name]["_id"]), JWT_SECRET)
        return {"Authorization": f"Bearer {token}"}

    return headers
