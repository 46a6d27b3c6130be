from datetime import date, timedelta


def next_monday() -> str:
    day = date.today() + timedelta(days=2)
    while day.weekday() != 0:
        day += timedelta(days=1)
    return day.strftime("%d/%m/%Y")


def test_flow(client, sent_emails):
    # Shop setup
    res = client.post("/services/", json={"name": "Basic Cut", "description": "Haircut", "price": 200.0})
    assert res.status_code == 201, res.text
    service_id = res.json()["id"]

    res = client.post("/services/", json={"name": "Basic Cut", "price": 200.0})
    assert res.status_code == 400

    res = client.post("/barbers/", json={"display_name": "Sam", "email": "sam@example.com"})
    assert res.status_code == 201, res.text
    barber_id = res.json()["id"]

    res = client.put(f"/schedules/{barber_id}/monday", json={"time_slots": ["9", "10:00", "11:00"]})
    assert res.status_code == 200, res.text
    assert res.json()["time_slots"] == ["09:00", "10:00", "11:00"]

    res = client.post("/customers/", json={"email": "alice@example.com", "full_name": "Alice"})
    assert res.status_code == 201, res.text
    customer_id = res.json()["id"]

    monday = next_monday()
    res = client.get("/schedules/availability", params={"barber_id": barber_id, "date": monday})
    assert res.json()["available_slots"] == ["09:00", "10:00", "11:00"]

    # Direct booking
    booking = {
        "customer_id": customer_id,
        "barber_id": barber_id,
        "service_id": service_id,
        "date": monday,
        "time_slot": "09:00",
    }
    res = client.post("/appointments/", json=booking)
    assert res.status_code == 201, res.text
    appointment = res.json()
    assert appointment["status"] == "pending"
    assert appointment["appointment_date"] == monday

    res = client.post("/appointments/", json=booking)
    assert res.status_code == 409
    assert res.json()["code"] == "slot_taken"

    res = client.post("/appointments/", json={**booking, "time_slot": "15:00"})
    assert res.status_code == 422
    assert res.json()["code"] == "slot_not_offered"

    res = client.get("/schedules/availability", params={"barber_id": barber_id, "date": monday})
    assert res.json()["available_slots"] == ["10:00", "11:00"]
    assert res.json()["booked_slots"] == ["09:00"]

    # Reschedule once
    res = client.put(f"/appointments/{appointment['id']}/reschedule", json={"date": monday, "time_slot": "11:00"})
    assert res.status_code == 200, res.text
    assert res.json()["reschedule_count"] == 1

    res = client.put(f"/appointments/{appointment['id']}/reschedule", json={"date": monday, "time_slot": "10:00"})
    assert res.status_code == 409
    assert res.json()["code"] == "reschedule_limit_reached"

    # Staff confirms, then an invalid transition
    res = client.put(f"/appointments/{appointment['id']}/status", json={"status": "confirmed"})
    assert res.status_code == 200
    assert ("alice@example.com", "Appointment confirmed") in sent_emails

    res = client.put(f"/appointments/{appointment['id']}/status", json={"status": "pending"})
    assert res.status_code == 409
    assert res.json()["code"] == "invalid_transition"

    # Paid booking for the freed 09:00 slot
    event = {
        "transaction_id": "cs_test_smoke",
        "service_id": service_id,
        "payment_type": "full",
        "customer_id": customer_id,
        "slot": {"barber_id": barber_id, "date": monday, "time_slot": "09:00"},
    }
    res = client.post("/payments/events", json=event)
    assert res.status_code == 200, res.text
    assert res.json()["appointment"]["status"] == "confirmed"

    res = client.get("/admin/appointments", params={"barber_id": barber_id, "date": monday})
    assert [a["time_slot"] for a in res.json()] == ["09:00", "11:00"]

    res = client.get("/appointments/999")
    assert res.status_code == 404
