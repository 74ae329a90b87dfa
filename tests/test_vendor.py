from datetime import datetime

import pytest
from bson import ObjectId

from conftest import new_order
from errors import NotFound
from orders import EXPORT_MESSAGE, REPORT_MESSAGE
from schemas import ShippingInfo, TrackingInfo


@pytest.fixture
def placed(service, users, products, clock):
    """Three orders: two with the vendor's products, one with only a rival product."""
    mine = service.create_order(new_order([(products["p1"]["_id"], 1, 5)], 5, payment_id="a"), users["customer"])
    clock.advance(days=10)
    mixed = service.create_order(
        new_order([(products["p3"]["_id"], 1, 7), (products["p2"]["_id"], 2, 10)], 27, payment_id="b"), users["other"]
    )
    clock.advance(days=10)
    rival = service.create_order(new_order([(products["p3"]["_id"], 1, 7)], 7, payment_id="c"), users["customer"])
    return {"mine": mine, "mixed": mixed, "rival": rival}


def ids(orders):
    return sorted(o["id"] for o in orders)


def test_vendor_orders_only_own_products(service, users, placed):
    assert ids(service.vendor_orders(users["vendor"])) == ids([placed["mine"], placed["mixed"]])
    assert ids(service.vendor_orders(users["rival"])) == ids([placed["mixed"], placed["rival"]])


def test_vendor_without_products_sees_nothing(service, users, placed):
    assert service.vendor_orders(users["admin"]) == []
    assert service.vendor_order_totals(users["admin"]) == 0


def test_vendor_orders_by_status(service, users, placed):
    service.update_order_status(placed["mixed"]["id"], "Shipped")

    shipped = service.vendor_orders_by_status(users["vendor"], "Shipped")
    assert ids(shipped) == [placed["mixed"]["id"]]
    assert ids(service.vendor_orders_by_status(users["vendor"], "Processing")) == [placed["mine"]["id"]]


def test_vendor_orders_by_date_range(service, users, placed):
    orders = service.vendor_orders_by_date_range(users["vendor"], datetime(2024, 1, 5), datetime(2024, 1, 31))
    assert ids(orders) == [placed["mixed"]["id"]]

    # range ends are inclusive
    orders = service.vendor_orders_by_date_range(
        users["vendor"], datetime(2024, 1, 1, 12, 0, 0), datetime(2024, 1, 11, 12, 0, 0)
    )
    assert ids(orders) == ids([placed["mine"], placed["mixed"]])


def test_vendor_orders_by_product(service, users, products, placed):
    orders = service.vendor_orders_by_product(users["vendor"], str(products["p2"]["_id"]))
    assert ids(orders) == [placed["mixed"]["id"]]

    assert service.vendor_orders_by_product(users["vendor"], str(products["p3"]["_id"])) == []
    assert service.vendor_orders_by_product(users["vendor"], "bogus") == []


def test_vendor_orders_by_user(service, users, placed):
    orders = service.vendor_orders_by_user(users["vendor"], str(users["customer"]["_id"]))
    assert ids(orders) == [placed["mine"]["id"]]
    assert service.vendor_orders_by_user(users["vendor"], "bogus") == []


def test_vendor_order_totals(service, users, placed):
    assert service.vendor_order_totals(users["vendor"]) == 32
    assert service.vendor_order_totals(users["rival"]) == 34


def test_mark_order_paid_changes_only_payment_status(service, db, placed):
    oid = ObjectId(placed["mine"]["id"])
    before = db["orders"].find_one({"_id": oid})

    service.mark_order_paid(placed["mine"]["id"])

    after = db["orders"].find_one({"_id": oid})
    assert after["paymentInfo"] == {"id": "a", "status": "Paid"}
    after["paymentInfo"] = before["paymentInfo"]
    assert after == before


def test_apply_refund_checks_existence(service, placed):
    service.apply_refund(placed["mine"]["id"])
    with pytest.raises(NotFound):
        service.apply_refund(str(ObjectId()))


def test_update_notes(service, db, placed):
    service.update_notes(placed["mine"]["id"], "Gift wrap please")
    assert service.get_order(placed["mine"]["id"])["notes"] == "Gift wrap please"


def test_update_shipping_info(service, placed):
    info = ShippingInfo(
        address="1 New Road", city="Mumbai", state="MH", country="IN", pincode="400001", phone_no="9111111111"
    )
    service.update_shipping_info(placed["mine"]["id"], info)

    shipping = service.get_order(placed["mine"]["id"])["shippingInfo"]
    assert shipping["city"] == "Mumbai"
    assert shipping["phoneNo"] == "9111111111"


def test_update_tracking_info(service, placed):
    service.update_tracking_info(placed["mine"]["id"], TrackingInfo(carrier="BlueDart", tracking_number="BD123"))

    tracking = service.get_order(placed["mine"]["id"])["trackingInfo"]
    assert tracking == {"carrier": "BlueDart", "trackingNumber": "BD123", "trackingUrl": None}


def test_confirm_delivery(service, clock, placed):
    clock.advance(days=2)
    service.confirm_delivery(placed["mine"]["id"])

    order = service.get_order(placed["mine"]["id"])
    assert order["orderStatus"] == "Delivered"
    assert order["deliveredAt"] == clock.now


SHIPPING = ShippingInfo(address="1 New Road", city="Mumbai", state="MH", country="IN", pincode="400001", phone_no="9111")


@pytest.mark.parametrize(
    "edit, args",
    [
        ("mark_order_paid", ()),
        ("confirm_delivery", ()),
        ("update_notes", ("x",)),
        ("update_shipping_info", (SHIPPING,)),
        ("update_tracking_info", (TrackingInfo(carrier="DHL"),)),
    ],
)
def test_vendor_edits_missing_order(service, db, edit, args):
    with pytest.raises(NotFound):
        getattr(service, edit)(str(ObjectId()), *args)
    with pytest.raises(NotFound):
        getattr(service, edit)("not-an-id", *args)
    assert db["orders"].count_documents({}) == 0


def test_report_placeholders(service, users):
    assert service.generate_report(users["vendor"]) == REPORT_MESSAGE
    assert service.export_orders(users["vendor"]) == EXPORT_MESSAGE
