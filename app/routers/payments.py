# app/routers/payments.py
import json
import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from .. import schemas
from ..payment import apply_payment_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/events", response_model=schemas.PaymentEventOut)
def payment_event(payload: schemas.PaymentEvent, db: Session = Depends(get_db)):
    """Apply an already-verified payment completion. Safe to call repeatedly."""
    result = apply_payment_event(db, payload)
    return schemas.PaymentEventOut.model_validate(result)


def _verify_event(body: bytes, signature: str | None) -> dict:
    if settings.STRIPE_WEBHOOK_SECRET:
        if not signature:
            raise HTTPException(status_code=400, detail="Missing Stripe signature")
        try:
            stripe.Webhook.construct_event(body, signature, settings.STRIPE_WEBHOOK_SECRET)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise HTTPException(status_code=400, detail="Invalid signature")
    elif settings.ENVIRONMENT.lower() not in ("development", "dev"):
        logger.error("STRIPE_WEBHOOK_SECRET not configured, refusing unsigned webhook")
        raise HTTPException(status_code=400, detail="Webhook verification not configured")

    try:
        return json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")


def event_from_checkout_session(session: dict) -> schemas.PaymentEvent:
    metadata = session.get("metadata") or {}
    service_id = metadata.get("serviceId")
    payment_type = metadata.get("paymentType")
    if not service_id or not payment_type:
        raise HTTPException(status_code=400, detail="Invalid session metadata")

    slot = None
    if metadata.get("barberId") and metadata.get("appointmentDate") and metadata.get("timeSlot"):
        slot = {
            "barber_id": metadata["barberId"],
            "date": metadata["appointmentDate"],
            "time_slot": metadata["timeSlot"],
            "notes": metadata.get("notes"),
        }

    amount_total = session.get("amount_total")
    try:
        return schemas.PaymentEvent(
            transaction_id=session.get("id") or "",
            service_id=service_id,
            payment_type=payment_type,
            amount=amount_total / 100 if amount_total is not None else None,
            payment_method="stripe",
            customer_id=metadata.get("userId") or None,
            slot=slot,
        )
    except SchemaValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid session metadata: {e.errors()}")


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    event = _verify_event(body, request.headers.get("stripe-signature"))
    event_type = event.get("type")
    logger.info(f"Stripe webhook received: {event_type} ({event.get('id')})")

    if event_type != "checkout.session.completed":
        logger.info(f"Unhandled event type: {event_type}")
        return {"received": True}

    payment_event = event_from_checkout_session(event.get("data", {}).get("object", {}))
    result = await run_in_threadpool(apply_payment_event, db, payment_event)
    return {
        "received": True,
        "duplicate": result.duplicate,
        "payment_id": result.payment.id,
        "appointment_id": result.appointment.id if result.appointment else None,
    }
