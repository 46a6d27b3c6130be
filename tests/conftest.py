import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "development")

from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app import models
from app.database import make_engine
from app.main import create_app
from app.schedules import set_barber_schedule


def upcoming(weekday: int, min_days_ahead: int = 2) -> date:
    """Next date falling on ``weekday`` (0 = Monday) at least ``min_days_ahead`` days away."""
    day = date.today() + timedelta(days=min_days_ahead)
    while day.weekday() != weekday:
        day += timedelta(days=1)
    return day


def wire(day: date) -> str:
    return day.strftime("%d/%m/%Y")


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def app(engine):
    return create_app(engine=engine)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def session_factory(app):
    return app.state.session_factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def shop(db):
    """One customer, one barber working Mondays at 09:00 and 10:00, one service."""
    customer = models.User(email="alice@example.com", full_name="Alice")
    barber = models.Barber(display_name="Beto", email="beto@barbershop.local")
    service = models.Service(name="Classic Cut", price=250.0, duration_minutes=60)
    db.add_all([customer, barber, service])
    db.commit()
    set_barber_schedule(db, barber.id, "monday", ["09:00", "10:00"])
    monday = upcoming(0)
    return SimpleNamespace(
        customer_id=customer.id,
        barber_id=barber.id,
        service_id=service.id,
        monday=monday,
        monday_wire=wire(monday),
    )


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    def fake_send(to_email, subject, body):
        sent.append((to_email, subject))
        return True

    monkeypatch.setattr("app.notifications.send_email", fake_send)
    return sent
