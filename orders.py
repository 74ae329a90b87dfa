"""
Order lifecycle service

Creates, reads, advances and deletes orders, plus the vendor-scoped queries
and edits. The database handle, the notifier and the clock are passed in.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import (
    ORDERS,
    PRODUCTS,
    USERS,
    create_document,
    get_documents,
    payment_key,
    to_object_id,
    to_str_id,
    utcnow,
)
from errors import AlreadyDelivered, DuplicateOrder, NotFound
from schemas import NewOrder, ShippingInfo, TrackingInfo

logger = logging.getLogger(__name__)

PROCESSING = "Processing"
SHIPPED = "Shipped"
DELIVERED = "Delivered"

REPORT_MESSAGE = "Order report generation is not yet implemented"
EXPORT_MESSAGE = "Order export is not yet implemented"


# ----- Utilities -----

def serialize_order(doc: Dict[str, Any]) -> Dict[str, Any]:
    d = dict(doc)
    d.pop("paymentKey", None)
    return to_str_id(d)


def to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def order_total(orders: List[Dict[str, Any]]) -> float:
    return sum(o.get("totalPrice", 0) for o in orders)


class OrderService:
    def __init__(self, db: Database, notifier=None, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.notifier = notifier
        self.clock = clock

    @property
    def orders(self):
        return self.db[ORDERS]

    # ----- Customer -----

    def create_order(self, new_order: NewOrder, user: Dict[str, Any]) -> Dict[str, Any]:
        data = new_order.model_dump(by_alias=True)
        for item in data["orderItems"]:
            item["product"] = ObjectId(item["product"])

        now = self.clock()
        doc = {
            "shippingInfo": data["shippingInfo"],
            "orderItems": data["orderItems"],
            "paymentInfo": data["paymentInfo"],
            "paymentKey": payment_key(data["paymentInfo"]),
            "totalPrice": data["totalPrice"],
            "orderStatus": PROCESSING,
            "paidAt": now,
            "createdAt": now,
            "user": user["_id"],
        }
        # unique index on paymentKey makes this a conditional insert
        try:
            order_id = create_document(self.db, ORDERS, doc)
        except DuplicateKeyError:
            logger.info("Rejected duplicate order for payment %s", data["paymentInfo"].get("id"))
            raise DuplicateOrder()

        order = self.orders.find_one({"_id": ObjectId(order_id)})
        logger.info("Order %s placed by user %s", order_id, user["_id"])
        self._notify_order_placed(user, order)
        return serialize_order(order)

    def _notify_order_placed(self, user: Dict[str, Any], order: Dict[str, Any]) -> None:
        if self.notifier is None:
            return
        data = {
            "name": user.get("name"),
            "shippingInfo": order["shippingInfo"],
            "orderItems": to_str_id(order["orderItems"]),
            "totalPrice": order["totalPrice"],
            "oid": str(order["_id"]),
        }
        ok, error = self.notifier.send_order_confirmation(user.get("email"), data)
        if not ok:
            # the order stands even when the confirmation email cannot be sent
            logger.warning("Order confirmation for %s not sent: %s", order["_id"], error)

    def get_order(self, order_id: str) -> Dict[str, Any]:
        order = self._find(order_id)
        owner = self.db[USERS].find_one({"_id": order.get("user")}, {"name": 1, "email": 1})
        order["user"] = owner
        return serialize_order(order)

    def list_my_orders(self, user: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [serialize_order(o) for o in get_documents(self.db, ORDERS, {"user": user["_id"]})]

    # ----- Admin -----

    def list_all_orders(self) -> Tuple[List[Dict[str, Any]], float]:
        orders = get_documents(self.db, ORDERS)
        return [serialize_order(o) for o in orders], order_total(orders)

    def update_order_status(self, order_id: str, status: str) -> None:
        order = self._find(order_id)
        if order.get("orderStatus") == DELIVERED:
            raise AlreadyDelivered()

        now = self.clock()
        changes: Dict[str, Any] = {"orderStatus": status}
        if status == SHIPPED:
            changes["shippedAt"] = now
        if status == DELIVERED:
            changes["deliveredAt"] = now

        # re-check the terminal state in the write itself
        result = self.orders.update_one(
            {"_id": order["_id"], "orderStatus": {"$ne": DELIVERED}},
            {"$set": changes},
        )
        if result.matched_count == 0:
            raise AlreadyDelivered()

        if status == SHIPPED:
            # one atomic decrement per item; earlier items stay applied if a later one fails
            for item in order.get("orderItems", []):
                self._decrement_stock(item["product"], item["quantity"])
        logger.info("Order %s moved to %s", order["_id"], status)

    def _decrement_stock(self, product_id: Any, quantity: int) -> None:
        result = self.db[PRODUCTS].update_one(
            {"_id": to_object_id(product_id)}, {"$inc": {"stock": -quantity}}
        )
        if result.matched_count == 0:
            logger.warning("Product %s not found, stock not decremented", product_id)

    def delete_order(self, order_id: str) -> None:
        oid = to_object_id(order_id)
        if oid is None or self.orders.delete_one({"_id": oid}).deleted_count == 0:
            raise NotFound()
        logger.info("Order %s deleted", oid)

    # ----- Vendor queries -----

    def _vendor_product_ids(self, vendor: Dict[str, Any]) -> List[ObjectId]:
        return [p["_id"] for p in self.db[PRODUCTS].find({"vendor": vendor["_id"]}, {"_id": 1})]

    def _vendor_orders(self, vendor: Dict[str, Any], **conditions: Any) -> List[Dict[str, Any]]:
        query = {"orderItems.product": {"$in": self._vendor_product_ids(vendor)}}
        query.update(conditions)
        return get_documents(self.db, ORDERS, query)

    def vendor_orders(self, vendor: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [serialize_order(o) for o in self._vendor_orders(vendor)]

    def vendor_orders_by_status(self, vendor: Dict[str, Any], status: str) -> List[Dict[str, Any]]:
        return [serialize_order(o) for o in self._vendor_orders(vendor, orderStatus=status)]

    def vendor_orders_by_date_range(
        self, vendor: Dict[str, Any], start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        created = {"$gte": to_naive_utc(start), "$lte": to_naive_utc(end)}
        return [serialize_order(o) for o in self._vendor_orders(vendor, createdAt=created)]

    def vendor_orders_by_product(self, vendor: Dict[str, Any], product_id: str) -> List[Dict[str, Any]]:
        pid = to_object_id(product_id)
        if pid is None or pid not in self._vendor_product_ids(vendor):
            return []
        return [serialize_order(o) for o in get_documents(self.db, ORDERS, {"orderItems.product": pid})]

    def vendor_orders_by_user(self, vendor: Dict[str, Any], user_id: str) -> List[Dict[str, Any]]:
        uid = to_object_id(user_id)
        if uid is None:
            return []
        return [serialize_order(o) for o in self._vendor_orders(vendor, user=uid)]

    def vendor_order_totals(self, vendor: Dict[str, Any]) -> float:
        return order_total(self._vendor_orders(vendor))

    # ----- Vendor edits -----

    def _find(self, order_id: str) -> Dict[str, Any]:
        oid = to_object_id(order_id)
        order = self.orders.find_one({"_id": oid}) if oid is not None else None
        if not order:
            raise NotFound()
        return order

    def _set(self, order_id: str, changes: Dict[str, Any]) -> None:
        oid = to_object_id(order_id)
        if oid is None or self.orders.update_one({"_id": oid}, {"$set": changes}).matched_count == 0:
            raise NotFound()

    def mark_order_paid(self, order_id: str) -> None:
        self._set(order_id, {"paymentInfo.status": "Paid"})

    def apply_refund(self, order_id: str) -> None:
        # refunds go through the payment provider; nothing is recorded here yet
        self._find(order_id)

    def update_notes(self, order_id: str, notes: Optional[str]) -> None:
        self._set(order_id, {"notes": notes})

    def update_shipping_info(self, order_id: str, shipping_info: ShippingInfo) -> None:
        self._set(order_id, {"shippingInfo": shipping_info.model_dump(by_alias=True)})

    def update_tracking_info(self, order_id: str, tracking_info: TrackingInfo) -> None:
        self._set(order_id, {"trackingInfo": tracking_info.model_dump(by_alias=True)})

    def confirm_delivery(self, order_id: str) -> None:
        self._set(order_id, {"orderStatus": DELIVERED, "deliveredAt": self.clock()})

    # ----- Reports -----

    def generate_report(self, vendor: Dict[str, Any]) -> str:
        return REPORT_MESSAGE

    def export_orders(self, vendor: Dict[str, Any]) -> str:
        return EXPORT_MESSAGE
