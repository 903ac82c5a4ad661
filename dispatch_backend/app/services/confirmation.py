"""
Delivery confirmation: the human-readable code and the signed QR.

The customer app fetches a QR for its trip; the driver app scans it and
posts it back. The signature is an HMAC-SHA256 over the canonical JSON of
``{tripId, customerId, driverId, amount}`` keyed with ``settings.qr_secret``,
so only a payload issued by this server for the trip's current customer,
driver and amount is accepted.
"""

import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch_backend.app.core.config import settings
from dispatch_backend.app.core.exceptions import (
    ForbiddenError,
    InvalidSignatureError,
    InvalidStateError,
    NotFoundError,
)
from dispatch_backend.app.models.enums import UserRole
from dispatch_backend.app.models.notification import NotificationType
from dispatch_backend.app.models.order import Order
from dispatch_backend.app.models.order_enums import OrderStatus
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_enums import LiveStatus, TripStatus
from dispatch_backend.app.schemas.qr import QRPayload, SignedQRPayload
from dispatch_backend.app.schemas.realtime import RealtimeEvent
from dispatch_backend.app.services.audit import AuditAction, log_event
from dispatch_backend.app.services.availability import release_driver
from dispatch_backend.app.services.notification_service import NotificationService
from dispatch_backend.app.services.realtime import ConnectionManager
from dispatch_backend.app.services.state_machine import (
    ACTIVE_TRIP_STATUSES,
    ensure_order_transition,
    ensure_trip_transition,
)
from dispatch_backend.app.services.timeline import append_timeline
from dispatch_backend.app.services.transactions import commit_or_conflict

logger = logging.getLogger("dispatch.confirmation")


def generate_confirmation_code(length: Optional[int] = None) -> str:
    """Uniform random numeric code, ``length`` ASCII digits."""
    if length is None:
        length = settings.confirmation_code_length
    if length < 1:
        raise ValueError("Confirmation code length must be positive")
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def qr_amount(trip: Trip) -> float:
    return round((trip.total_amount or 0) + (trip.delivery_fee or 0), 2)


def has_cent_precision(amount: float) -> bool:
    return round(amount, 2) == amount


def canonical_payload(payload: QRPayload) -> bytes:
    body = {
        "tripId": payload.trip_id,
        "customerId": payload.customer_id,
        "driverId": payload.driver_id,
        "amount": round(payload.amount, 2),
    }
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")


def sign_qr_payload(payload: QRPayload, secret: Optional[str] = None) -> str:
    key = (settings.qr_secret if secret is None else secret).encode("utf-8")
    return hmac.new(key, canonical_payload(payload), hashlib.sha256).hexdigest()


def verify_qr_signature(signed: SignedQRPayload, secret: Optional[str] = None) -> bool:
    # Only cent amounts are ever signed; finer digits would vanish in the rounding
    if not has_cent_precision(signed.amount):
        return False
    expected = sign_qr_payload(signed, secret)
    return hmac.compare_digest(expected, signed.signature)


@dataclass
class DeliveryConfirmation:
    trip: Trip
    order: Optional[Order]


async def issue_trip_qr(db: AsyncSession, trip_id: int, customer_id: int) -> tuple[SignedQRPayload, Trip]:
    """
    Build the signed QR for a customer's trip. Nothing is persisted; the
    payload is recomputed on every call.

    Raises:
        NotFoundError: If the trip does not exist or belongs to another customer
        InvalidStateError: If the trip is not assigned or in progress
    """
    result = await db.execute(
        select(Trip).where(Trip.id == trip_id, Trip.customer_id == customer_id)
    )
    trip = result.scalar_one_or_none()
    if not trip:
        raise NotFoundError("Trip", trip_id)

    if trip.status not in ACTIVE_TRIP_STATUSES or trip.driver_id is None:
        raise InvalidStateError(
            "Trip is not active",
            details={"trip_status": trip.status.value}
        )

    payload = QRPayload(
        trip_id=trip.id,
        customer_id=trip.customer_id,
        driver_id=trip.driver_id,
        amount=qr_amount(trip),
    )
    signed = SignedQRPayload(
        **payload.model_dump(),
        signature=sign_qr_payload(payload),
        company_id=trip.company_id,
    )
    return signed, trip


async def confirm_delivery_by_scan(
    db: AsyncSession,
    scanned: SignedQRPayload,
    current_user: dict,
    notifier: ConnectionManager
) -> DeliveryConfirmation:
    """
    Redeem a scanned QR and mark the trip delivered.

    The signature is checked before anything is loaded, and every failure
    leaves the trip untouched.

    Raises:
        ForbiddenError: If the scanner is not a driver or not the trip's driver
        InvalidSignatureError: If the signature does not verify or no longer
            describes the trip
        NotFoundError: If the trip does not exist
        InvalidStateError: If the trip is not in progress
    """
    if current_user.get("role") != UserRole.DRIVER.value:
        raise ForbiddenError("Only drivers can confirm deliveries")

    if not verify_qr_signature(scanned):
        logger.warning(
            "Rejected QR with bad signature for trip %s from driver %s",
            scanned.trip_id, current_user["user_id"]
        )
        raise InvalidSignatureError()

    result = await db.execute(
        select(Trip).where(Trip.id == scanned.trip_id).with_for_update()
    )
    trip = result.scalar_one_or_none()
    if not trip:
        raise NotFoundError("Trip", scanned.trip_id)

    driver_id = current_user["user_id"]
    if trip.driver_id != driver_id:
        raise ForbiddenError("This delivery is not assigned to you")

    # A QR issued before a re-assignment or a price change is stale
    if (
        scanned.customer_id != trip.customer_id
        or scanned.driver_id != trip.driver_id
        or scanned.amount != qr_amount(trip)
    ):
        raise InvalidSignatureError("QR code no longer matches this trip")

    if trip.status != TripStatus.IN_PROGRESS:
        raise InvalidStateError(
            "Trip is not deliverable",
            details={"trip_status": trip.status.value}
        )
    ensure_trip_transition(trip.status, TripStatus.DELIVERED)

    order = None
    if trip.order_id is not None:
        order_result = await db.execute(
            select(Order).where(Order.id == trip.order_id).with_for_update()
        )
        order = order_result.scalar_one_or_none()
    deliver_order = order is not None and order.status != OrderStatus.DELIVERED
    if deliver_order:
        ensure_order_transition(order.status, OrderStatus.DELIVERED)

    now = datetime.now(timezone.utc)
    trip.status = TripStatus.DELIVERED
    trip.live_status = LiveStatus.DELIVERED
    trip.customer_confirmed = True
    trip.confirmation_time = now
    trip.end_time = now

    if deliver_order:
        order.status = OrderStatus.DELIVERED
        append_timeline(order, "delivery_confirmed", {"by": driver_id, "tripId": trip.id})

    await release_driver(db, driver_id)

    await log_event(
        db=db,
        action=AuditAction.DELIVERY_CONFIRMED,
        actor_id=driver_id,
        actor_username=current_user.get("sub"),
        target_user_id=trip.customer_id,
        metadata={"trip_id": trip.id, "order_id": trip.order_id, "amount": qr_amount(trip)}
    )
    customer_notification = None
    if trip.customer_id is not None:
        customer_notification = await NotificationService.create_notification(
            db,
            user_id=trip.customer_id,
            title="Delivered",
            message=f"Your order #{trip.order_id or trip.id} has been delivered",
            type=NotificationType.TRIP_UPDATE,
            metadata={"trip_id": trip.id, "order_id": trip.order_id}
        )

    await commit_or_conflict(db)
    await db.refresh(trip)
    if order is not None:
        await db.refresh(order)

    logger.info("Trip %s delivered, confirmed by driver %s", trip.id, driver_id)

    update = {
        "tripId": trip.id,
        "orderId": trip.order_id,
        "status": trip.status.value,
        "liveStatus": trip.live_status,
        "confirmationTime": trip.confirmation_time,
    }
    await notifier.emit_to_user(trip.customer_id, RealtimeEvent.TRIP_STATUS_UPDATE, update)
    if order is not None:
        await notifier.emit_to_user(
            trip.customer_id,
            RealtimeEvent.ORDER_STATUS_UPDATE,
            {"orderId": order.id, "status": order.status.value}
        )
    if customer_notification is not None:
        await NotificationService.push(notifier, customer_notification)

    return DeliveryConfirmation(trip=trip, order=order)
