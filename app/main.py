# app/main.py
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import APIRouter, Cookie, Depends, FastAPI, Form, Header, HTTPException, Request, Response
from pydantic import BaseModel, EmailStr
from twilio.twiml.messaging_response import MessagingResponse

from .auth import create_token, decode_token, hash_password, verify_password
from .db import engine
from .ordering.errors import InvalidTransition, NotFound, OrderingError, PaymentMismatch
from .ordering.menu_store import normalize_slug
from .ordering.orders import OrderStatus
from .services import Services, build_services
from .settings import Settings, settings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Project paths
PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_MENUS_DIR = PROJECT_ROOT / "data"

GUEST_COOKIE_MAX_AGE = 60 * 60 * 24 * 30  # 30 days


# -------------------
# Schemas
# -------------------
class SignupIn(BaseModel):
    business_id: str
    name: str
    email: EmailStr
    phone: Optional[str] = None
    password: str
    currency: str = "USD"
    menu: Dict[str, Decimal] = {}
    inventory: Dict[str, int] = {}


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class ChatIn(BaseModel):
    message: str


class PaymentIn(BaseModel):
    orderId: str
    amountPaid: Optional[Decimal] = None


class StatusIn(BaseModel):
    status: OrderStatus


# -------------------
# Dependencies / helpers
# -------------------
def get_services(request: Request) -> Services:
    return request.app.state.services


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_business_id(authorization: str | None = Header(default=None)) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")

    token = authorization.split(" ", 1)[1].strip()
    business_id = decode_token(token)
    if not business_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return business_id


def guest_identity(response: Response, guest_id: str | None = Cookie(default=None, alias="guest_id")) -> str:
    """Web chat customers are identified by a long-lived cookie instead of a phone number."""
    if not guest_id:
        guest_id = uuid4().hex

    # Refresh cookie
    response.set_cookie(
        key="guest_id",
        value=guest_id,
        httponly=True,
        samesite="lax",
        max_age=GUEST_COOKIE_MAX_AGE,
    )
    return f"web:{guest_id}"


def _ensure_owner(business_id: str, owner: str) -> None:
    if normalize_slug(business_id) != normalize_slug(owner):
        raise HTTPException(status_code=403, detail="Not your business")


def _http_error(exc: OrderingError) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidTransition):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, PaymentMismatch):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


def _twiml(text: Optional[str]) -> Response:
    resp = MessagingResponse()
    if text:
        resp.message(text)
    return Response(content=str(resp), media_type="application/xml")


router = APIRouter()


@router.get("/")
def root():
    return {"ok": True, "service": "text-order-intake"}


# -------------------
# Auth (merchants)
# -------------------
@router.post("/auth/signup")
def signup(payload: SignupIn, services: Services = Depends(get_services)):
    slug = normalize_slug(payload.business_id)
    if not slug:
        raise HTTPException(status_code=400, detail="business_id is required")
    if services.tenants.get(slug):
        raise HTTPException(status_code=400, detail="Business already exists")
    if services.tenants.get_login(payload.email):
        raise HTTPException(status_code=400, detail="Email already exists")

    services.tenants.save(
        business_id=slug,
        name=payload.name,
        menu=payload.menu,
        inventory=payload.inventory,
        phone_number=payload.phone,
        currency=payload.currency.upper(),
        email=payload.email,
        password_hash=hash_password(payload.password),
    )
    return {"ok": True, "businessId": slug}


@router.post("/auth/login")
def login(payload: LoginIn, services: Services = Depends(get_services)):
    found = services.tenants.get_login(payload.email)
    if not found or not verify_password(payload.password, found[1]):
        raise HTTPException(status_code=401, detail="Bad credentials")
    return {"token": create_token(found[0])}


# -------------------
# SMS channel (Twilio webhook)
# -------------------
@router.post("/sms/webhook")
async def sms_webhook(
    Body: str = Form(default=""),
    From: str = Form(...),
    To: str = Form(...),
    services: Services = Depends(get_services),
):
    tenant = services.tenants.get_by_phone(To)
    if tenant is None:
        # Twilio retries on errors; an empty reply just ends the exchange
        logger.warning("SMS to unknown business number %s", To)
        return _twiml(None)

    result = await services.desk.handle_inbound_message(tenant.id, From, Body)
    return _twiml(result.response_text)


# -------------------
# Web chat channel (QR code -> /r/{slug})
# -------------------
@router.get("/r/{slug}/health")
def restaurant_health(slug: str, services: Services = Depends(get_services)):
    tenant = services.tenants.get(slug)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Business not found")
    return {"ok": True, "business": tenant.id}


@router.get("/r/{slug}/menu")
def restaurant_menu(slug: str, services: Services = Depends(get_services)):
    tenant = services.tenants.get(slug)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Business not found")
    return {
        "business": tenant.name,
        "currency": tenant.currency,
        "items": [
            {"name": name, "price": float(price), "stock": tenant.inventory.get(name) if tenant.tracks_inventory else None}
            for name, price in tenant.menu.items()
        ],
    }


@router.post("/r/{slug}/chat")
async def chat_for_restaurant(
    slug: str,
    payload: ChatIn,
    customer: str = Depends(guest_identity),
    services: Services = Depends(get_services),
):
    tenant = services.tenants.get(slug)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Business not found")

    result = await services.desk.handle_inbound_message(tenant.id, customer, payload.message)
    return {"reply": result.response_text, "payload": result.payload, "business": tenant.id}


# -------------------
# Payments
# -------------------
@router.get("/pay/{order_id}")
def checkout_summary(
    order_id: str,
    services: Services = Depends(get_services),
    cfg: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """What the payment page shows. Public, so no customer contact details."""
    try:
        order = services.lifecycle.get_order(order_id)
    except OrderingError as exc:
        raise _http_error(exc) from exc

    tenant = services.tenants.get(order.business_id)
    return {
        "orderId": order.id,
        "business": tenant.name if tenant else order.business_id,
        "currency": tenant.currency if tenant else cfg.currency_default,
        "items": [i.to_dict() for i in order.items],
        "total": float(order.total),
        "status": order.status.value,
        "paid": order.status is not OrderStatus.AWAITING_PAYMENT,
    }


@router.post("/payments/confirm")
async def confirm_payment(
    payload: PaymentIn,
    x_payment_secret: str | None = Header(default=None),
    services: Services = Depends(get_services),
    cfg: Settings = Depends(get_settings),
):
    if cfg.payment_webhook_secret and x_payment_secret != cfg.payment_webhook_secret:
        raise HTTPException(status_code=401, detail="Bad payment secret")

    try:
        result = await services.lifecycle.confirm_payment(payload.orderId, payload.amountPaid)
    except OrderingError as exc:
        raise _http_error(exc) from exc
    return {"ok": True, "orderId": result.order.id, "status": result.order.status.value, "changed": result.changed}


# -------------------
# Orders (merchant side)
# -------------------
@router.get("/orders/{order_id}")
def get_order(
    order_id: str,
    owner: str = Depends(require_business_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    try:
        order = services.lifecycle.get_order(order_id)
    except OrderingError as exc:
        raise _http_error(exc) from exc
    _ensure_owner(order.business_id, owner)
    return order.to_record()


@router.put("/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    payload: StatusIn,
    owner: str = Depends(require_business_id),
    services: Services = Depends(get_services),
):
    try:
        order = services.lifecycle.get_order(order_id)
        _ensure_owner(order.business_id, owner)
        result = await services.lifecycle.update_status(order_id, payload.status)
    except OrderingError as exc:
        raise _http_error(exc) from exc
    return {"ok": True, "order": result.order.to_record(), "changed": result.changed}


@router.get("/business/{business_id}/orders")
def list_business_orders(
    business_id: str,
    owner: str = Depends(require_business_id),
    services: Services = Depends(get_services),
):
    _ensure_owner(business_id, owner)
    if services.tenants.get(business_id) is None:
        raise HTTPException(status_code=404, detail="Business not found")
    return {"orders": [o.to_record() for o in services.lifecycle.list_orders(normalize_slug(business_id))]}


# -------------------
# App factory
# -------------------
def create_app(services: Optional[Services] = None, cfg: Settings = settings) -> FastAPI:
    if services is None:
        services = build_services(engine, cfg)
        menus_dir = Path(cfg.menus_dir) if cfg.menus_dir else DEFAULT_MENUS_DIR
        seeded = services.tenants.seed_from_dir(menus_dir)
        logger.info("Seeded %d businesses from %s", seeded, menus_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(services.tracker.sweep_forever())
        app.state.session_sweeper = sweeper
        yield
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
        services.scheduler.shutdown()

    app = FastAPI(
        title="Text Order Intake API",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.settings = cfg
    app.include_router(router)
    return app


app = create_app()
