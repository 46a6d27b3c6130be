import threading

from app import models
from app.appointments import create_appointment
from app.errors import ConflictError
from app.payment import apply_payment_event
from app.schemas import PaymentEvent, SlotData

WORKERS = 8


def run_concurrently(session_factory, fn):
    """Run ``fn(session)`` on WORKERS threads released at the same moment."""
    barrier = threading.Barrier(WORKERS)
    results = []
    lock = threading.Lock()

    def worker():
        session = session_factory()
        try:
            barrier.wait()
            try:
                outcome = fn(session)
            except Exception as exc:
                outcome = exc
            with lock:
                results.append(outcome)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


def test_concurrent_bookings_of_one_slot_produce_a_single_winner(session_factory, db, shop):
    results = run_concurrently(
        session_factory,
        lambda s: create_appointment(
            s, shop.customer_id, shop.barber_id, shop.service_id, shop.monday_wire, "09:00"
        ),
    )

    winners = [r for r in results if isinstance(r, models.Appointment)]
    losers = [r for r in results if isinstance(r, ConflictError)]
    assert len(winners) == 1
    assert len(losers) == WORKERS - 1

    active = (
        db.query(models.Appointment)
        .filter(models.Appointment.time_slot == "09:00", models.Appointment.status != "cancelled")
        .count()
    )
    assert active == 1


def test_concurrent_replays_of_one_payment_event_apply_once(session_factory, db, shop):
    event = PaymentEvent(
        transaction_id="cs_test_race",
        service_id=shop.service_id,
        payment_type="advance",
        customer_id=shop.customer_id,
        slot=SlotData(barber_id=shop.barber_id, date=shop.monday_wire, time_slot="10:00"),
    )
    results = run_concurrently(session_factory, lambda s: apply_payment_event(s, event))

    assert not [r for r in results if isinstance(r, Exception)], results
    assert len([r for r in results if not r.duplicate]) == 1
    assert db.query(models.Payment).count() == 1
    assert db.query(models.Appointment).count() == 1
