import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import authorize_roles, get_current_user
from config import Settings
from database import connect, ensure_indexes
from errors import OrderError
from notifier import SendGridNotifier
from orders import OrderService
from schemas import DateRange, NewOrder, NotesUpdate, ShippingUpdate, StatusUpdate, TrackingUpdate

logger = logging.getLogger(__name__)

_UNSET = object()


# ----- Dependencies -----

def get_service(request: Request) -> OrderService:
    service = request.app.state.orders
    if service is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return service


admin_only = authorize_roles("admin")
vendor_only = authorize_roles("vendor", "admin")


# ----- Error boundary -----

def _error(status_code: int, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message}, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(OrderError)
    async def order_error(request: Request, exc: OrderError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
        return _error(400, "; ".join(parts) or "Invalid request")

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal Server Error")


# ----- Routes -----

def register_routes(app: FastAPI) -> None:
    # ----- Health -----
    @app.get("/")
    def read_root():
        return {"message": "Order Lifecycle API running"}

    @app.get("/test")
    def test_database(request: Request):
        db = request.app.state.db
        if db is None:
            return {"connection_status": "Not Connected", "collections": []}
        try:
            collections = db.list_collection_names()[:10]
        except Exception as e:
            return {"connection_status": "Connected", "error": str(e)[:80], "collections": []}
        return {"connection_status": "Connected", "database": db.name, "collections": collections}

    # ----- Orders -----
    @app.post("/order/new", status_code=201)
    def new_order(body: NewOrder, user=Depends(get_current_user), service: OrderService = Depends(get_service)):
        return {"success": True, "order": service.create_order(body, user)}

    @app.get("/order/{order_id}")
    def get_single_order(order_id: str, user=Depends(get_current_user), service: OrderService = Depends(get_service)):
        return {"success": True, "order": service.get_order(order_id)}

    @app.get("/orders/me")
    def my_orders(user=Depends(get_current_user), service: OrderService = Depends(get_service)):
        return {"success": True, "orders": service.list_my_orders(user)}

    # ----- Admin -----
    @app.get("/admin/orders")
    def all_orders(user=Depends(admin_only), service: OrderService = Depends(get_service)):
        orders, total = service.list_all_orders()
        return {"success": True, "orders": orders, "totalAmount": total}

    @app.put("/admin/order/{order_id}")
    def update_order(
        order_id: str, body: StatusUpdate, user=Depends(admin_only), service: OrderService = Depends(get_service)
    ):
        service.update_order_status(order_id, body.status)
        return {"success": True}

    @app.delete("/admin/order/{order_id}")
    def delete_order(order_id: str, user=Depends(admin_only), service: OrderService = Depends(get_service)):
        service.delete_order(order_id)
        return {"success": True}

    # ----- Vendor queries -----
    @app.get("/vendor/orders")
    def vendor_orders(vendor=Depends(vendor_only), service: OrderService = Depends(get_service)):
        return {"success": True, "orders": service.vendor_orders(vendor)}

    @app.get("/vendor/order/status/{status}")
    def vendor_orders_by_status(status: str, vendor=Depends(vendor_only), service: OrderService = Depends(get_service)):
        return {"success": True, "orders": service.vendor_orders_by_status(vendor, status)}

    @app.post("/vendor/order/daterange")
    def vendor_orders_by_date_range(
        body: DateRange, vendor=Depends(vendor_only), service: OrderService = Depends(get_service)
    ):
        orders = service.vendor_orders_by_date_range(vendor, body.start_date, body.end_date)
        return {"success": True, "orders": orders}

    @app.get("/vendor/order/product/{product_id}")
    def vendor_orders_by_product(
        product_id: str, vendor=Depends(vendor_only), service: OrderService = Depends(get_service)
    ):
        return {"success": True, "orders": service.vendor_orders_by_product(vendor, product_id)}

    @app.get("/vendor/order/user/{user_id}")
    def vendor_orders_by_user(user_id: str, vendor=Depends(vendor_only), service: OrderService = Depends(get_service)):
        return {"success": True, "orders": service.vendor_orders_by_user(vendor, user_id)}

    @app.get("/vendor/orders/totals")
    def vendor_order_totals(vendor=Depends(vendor_only), service: OrderService = Depends(get_service)):
        return {"success": True, "totalAmount": service.vendor_order_totals(vendor)}

    # ----- Vendor edits -----
    @app.put("/vendor/order/markpaid/{order_id}")
    def mark_order_paid(order_id: str, vendor=Depends(vendor_only), service: OrderService = Depends(get_service)):
        service.mark_order_paid(order_id)
        return {"success": True}

    @app.put("/vendor/order/refund/{order_id}")
    def apply_refund(order_id: str, vendor=Depends(vendor_only), service: OrderService = Depends(get_service)):
        service.apply_refund(order_id)
        return {"success": True}

    @app.put("/vendor/order/notes/{order_id}")
    def update_notes(
        order_id: str, body: NotesUpdate, vendor=Depends(vendor_only), service: OrderService = Depends(get_service)
    ):
        service.update_notes(order_id, body.notes)
        return {"success": True}

    @app.put("/vendor/order/shipping/{order_id}")
    def update_shipping(
        order_id: str, body: ShippingUpdate, vendor=Depends(vendor_only), service: OrderService = Depends(get_service)
    ):
        service.update_shipping_info(order_id, body.shipping_info)
        return {"success": True}

    @app.put("/vendor/order/tracking/{order_id}")
    def update_tracking(
        order_id: str, body: TrackingUpdate, vendor=Depends(vendor_only), service: OrderService = Depends(get_service)
    ):
        service.update_tracking_info(order_id, body.tracking_info)
        return {"success": True}

    @app.put("/vendor/order/confirm/{order_id}")
    def confirm_delivery(order_id: str, vendor=Depends(vendor_only), service: OrderService = Depends(get_service)):
        service.confirm_delivery(order_id)
        return {"success": True}

    # ----- Reports -----
    @app.get("/vendor/order/report")
    def order_report(vendor=Depends(vendor_only), service: OrderService = Depends(get_service)):
        return {"success": True, "message": service.generate_report(vendor)}

    @app.get("/vendor/order/export")
    def export_orders(vendor=Depends(vendor_only), service: OrderService = Depends(get_service)):
        return {"success": True, "message": service.export_orders(vendor)}


def create_app(settings: Optional[Settings] = None, db=_UNSET, notifier=_UNSET) -> FastAPI:
    settings = settings or Settings.from_env()
    if db is _UNSET:
        db = connect(settings)
    if notifier is _UNSET:
        notifier = SendGridNotifier(
            settings.sendgrid_api_key, settings.sendgrid_order_template_id, settings.sendgrid_from_email
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if db is not None:
            ensure_indexes(db)
        yield

    app = FastAPI(title="Order Lifecycle API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.orders = OrderService(db, notifier) if db is not None else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    register_routes(app)
    return app


settings = Settings.from_env()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = create_app(settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
