import hashlib
import hmac
import json
import time

import pytest

from app import models
from app.appointments import create_appointment
from app.config import settings
from app.errors import ConflictError, NotFoundError, ValidationError
from app.payment import apply_payment_event
from app.schemas import PaymentEvent, SlotData


def make_event(shop, transaction_id="cs_test_1", time_slot="09:00", **overrides):
    slot = overrides.pop("slot", SlotData(barber_id=shop.barber_id, date=shop.monday_wire, time_slot=time_slot))
    fields = dict(
        transaction_id=transaction_id,
        service_id=shop.service_id,
        payment_type="full",
        customer_id=shop.customer_id,
        slot=slot,
    )
    fields.update(overrides)
    return PaymentEvent(**fields)


def counts(db):
    return db.query(models.Payment).count(), db.query(models.Appointment).count()


def test_payment_event_books_a_confirmed_appointment(db, shop, sent_emails):
    result = apply_payment_event(db, make_event(shop))

    assert not result.duplicate
    assert result.appointment.status == "confirmed"
    assert result.appointment.time_slot == "09:00"
    assert result.payment.appointment_id == result.appointment.id
    assert result.payment.status == "completed"
    assert result.payment.amount == 250.0
    assert sent_emails == [("alice@example.com", "Appointment confirmed")]


def test_replayed_event_is_a_no_op(db, shop):
    first = apply_payment_event(db, make_event(shop))
    second = apply_payment_event(db, make_event(shop))

    assert second.duplicate
    assert second.payment.id == first.payment.id
    assert second.appointment.id == first.appointment.id
    assert counts(db) == (1, 1)


def test_payment_without_slot_records_only_the_payment(db, shop):
    result = apply_payment_event(db, make_event(shop, slot=None, amount=125.0, payment_type="advance"))
    assert result.appointment is None
    assert result.payment.amount == 125.0
    assert result.payment.payment_type == "advance"
    assert counts(db) == (1, 0)


def test_unknown_barber_rolls_everything_back(db, shop):
    event = make_event(shop, slot=SlotData(barber_id=999, date=shop.monday_wire, time_slot="09:00"))
    with pytest.raises(NotFoundError):
        apply_payment_event(db, event)
    assert counts(db) == (0, 0)


def test_malformed_date_fails_before_any_write(db, shop):
    event = make_event(shop, slot=SlotData(barber_id=shop.barber_id, date="2025-03-03", time_slot="09:00"))
    with pytest.raises(ValidationError):
        apply_payment_event(db, event)
    assert counts(db) == (0, 0)


def test_invalid_payment_type(db, shop):
    with pytest.raises(ValidationError):
        apply_payment_event(db, make_event(shop, payment_type="gift"))
    assert counts(db) == (0, 0)


def test_taken_slot_rolls_back_payment_and_allows_retry(db, shop):
    create_appointment(db, shop.customer_id, shop.barber_id, shop.service_id, shop.monday_wire, "09:00")

    with pytest.raises(ConflictError):
        apply_payment_event(db, make_event(shop))
    assert counts(db) == (0, 1)

    # Nothing was recorded for the transaction, so a later delivery can still land
    result = apply_payment_event(db, make_event(shop, time_slot="10:00"))
    assert not result.duplicate
    assert counts(db) == (1, 2)


def test_notification_failure_keeps_the_booking(db, shop, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr("app.notifications.send_email", broken)
    result = apply_payment_event(db, make_event(shop))
    assert result.appointment is not None
    assert counts(db) == (1, 1)


def test_payment_originated_appointment_may_lack_a_customer(db, shop):
    result = apply_payment_event(db, make_event(shop, customer_id=None))
    assert result.appointment.customer_id is None
    assert result.appointment.status == "confirmed"


# --- HTTP ---

def test_events_endpoint_reports_duplicates_with_200(client, shop):
    payload = make_event(shop).model_dump()
    first = client.post("/payments/events", json=payload)
    assert first.status_code == 200, first.text
    assert first.json()["duplicate"] is False
    assert first.json()["appointment"]["appointment_date"] == shop.monday_wire

    second = client.post("/payments/events", json=payload)
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert second.json()["payment"]["id"] == first.json()["payment"]["id"]


def test_events_endpoint_maps_conflicts_to_409(client, shop):
    assert client.post("/payments/events", json=make_event(shop, "cs_a").model_dump()).status_code == 200
    res = client.post("/payments/events", json=make_event(shop, "cs_b").model_dump())
    assert res.status_code == 409
    assert res.json()["code"] == "slot_taken"


def checkout_completed(shop, session_id="cs_live_1", **metadata):
    meta = {
        "serviceId": str(shop.service_id),
        "paymentType": "full",
        "userId": str(shop.customer_id),
        "barberId": str(shop.barber_id),
        "appointmentDate": shop.monday_wire,
        "timeSlot": "10:00",
    }
    meta.update(metadata)
    return {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {"object": {"id": session_id, "amount_total": 25000, "metadata": meta}},
    }


def sign(payload: str, secret: str) -> str:
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def test_unsigned_webhook_accepted_in_development(client, db, shop, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)
    monkeypatch.setattr(settings, "ENVIRONMENT", "development")

    res = client.post("/payments/webhook", content=json.dumps(checkout_completed(shop)))
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["received"] and not body["duplicate"]

    payment = db.query(models.Payment).one()
    assert payment.transaction_id == "cs_live_1"
    assert payment.amount == 250.0
    assert payment.appointment.time_slot == "10:00"


def test_unsigned_webhook_refused_in_production(client, shop, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    res = client.post("/payments/webhook", content=json.dumps(checkout_completed(shop)))
    assert res.status_code == 400


def test_signed_webhook_and_replay(client, db, shop, monkeypatch):
    secret = "whsec_test_secret"
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", secret)
    payload = json.dumps(checkout_completed(shop))

    res = client.post("/payments/webhook", content=payload, headers={"Stripe-Signature": sign(payload, secret)})
    assert res.status_code == 200, res.text

    replay = client.post("/payments/webhook", content=payload, headers={"Stripe-Signature": sign(payload, secret)})
    assert replay.status_code == 200
    assert replay.json()["duplicate"] is True
    assert counts(db) == (1, 1)


def test_bad_signature_is_rejected(client, shop, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
    payload = json.dumps(checkout_completed(shop))
    res = client.post("/payments/webhook", content=payload, headers={"Stripe-Signature": sign(payload, "wrong")})
    assert res.status_code == 400


def test_webhook_metadata_validation_and_other_events(client, shop, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)
    monkeypatch.setattr(settings, "ENVIRONMENT", "development")

    res = client.post("/payments/webhook", content=json.dumps(checkout_completed(shop, serviceId="")))
    assert res.status_code == 400

    other = {"id": "evt_2", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}}
    res = client.post("/payments/webhook", content=json.dumps(other))
    assert res.status_code == 200
    assert res.json() == {"received": True}
