"""
Request Schemas

Order management models. Field names are snake_case in Python and camelCase
on the wire and in the "orders" collection.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

OrderStatus = Literal["Processing", "Shipped", "Delivered"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShippingInfo(CamelModel):
    address: str = Field(..., description="Street address")
    city: str
    state: str
    country: str
    pincode: str = Field(..., description="Postal code")
    phone_no: str = Field(..., description="Contact phone number")


class OrderItem(CamelModel):
    product: str = Field(..., description="Product id")
    name: Optional[str] = None
    price: float = Field(..., ge=0, description="Unit price")
    quantity: int = Field(..., gt=0)
    image: Optional[str] = None

    @field_validator("product")
    @classmethod
    def check_product_id(cls, v: str) -> str:
        if not ObjectId.is_valid(v):
            raise ValueError("Invalid product id")
        return v


class PaymentInfo(CamelModel):
    id: str = Field(..., description="Payment provider reference")
    status: str = Field(..., description="Payment status, e.g. 'Paid'")


class TrackingInfo(CamelModel):
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None


class NewOrder(CamelModel):
    shipping_info: ShippingInfo
    order_items: List[OrderItem] = Field(..., min_length=1)
    payment_info: PaymentInfo
    total_price: float = Field(..., ge=0)


class StatusUpdate(CamelModel):
    status: OrderStatus


class DateRange(CamelModel):
    start_date: datetime
    end_date: datetime


class NotesUpdate(CamelModel):
    notes: Optional[str] = None


class ShippingUpdate(CamelModel):
    shipping_info: ShippingInfo


class TrackingUpdate(CamelModel):
    tracking_info: TrackingInfo
