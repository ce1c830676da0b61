"""
Fixtures compartidas: SQLite temporal, PMS fake, cache en memoria y tokens
"""
import os
import sys
import tempfile
from pathlib import Path

# Agregar directorio raíz al PYTHONPATH para imports
sys.path.insert(0, str(Path(__file__).parent.parent))

_TMP_DIR = tempfile.mkdtemp(prefix="breakfast_grid_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/test.db"
os.environ["LOG_FILE"] = os.path.join(_TMP_DIR, "test_logs.txt")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PMS_BASE_URL"] = ""
os.environ["JWT_SECRET_KEY"] = "test-secret"

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from database.conexion import Base, SessionLocal, engine
from endpoints.room_grid import get_sync_orchestrator
from main import app
from models.core import Property, Room, RoomStatus
from schemas.pms import ChargeResponse, PMSGuest
from services.guest_cache import GuestCache, get_guest_cache
from services.pms_adapter import FetchResult, PMSAdapter, get_pms_adapter
from services.sync_orchestrator import SyncOrchestrator
from utils.auth import create_access_token
from utils.errors import PmsAdapterFailure, PmsPostingFailed
from utils.timezone import get_operational_date


class FakePMSAdapter(PMSAdapter):
    """PMS en memoria: guests configurables, fallas programables y registro de cargos"""

    def __init__(self, guests=None):
        self.guests = list(guests or [])
        self.complete = True
        self.fetch_errors = []
        self.fetch_failures = 0
        self.fetch_calls = 0
        self.charges = []
        self.charge_error = None

    def fetch_guests(self, property_id):
        self.fetch_calls += 1
        if self.fetch_failures > 0:
            self.fetch_failures -= 1
            raise PmsAdapterFailure("PMS unavailable")
        return FetchResult(guests=list(self.guests), complete=self.complete, errors=list(self.fetch_errors))

    def post_charge(self, charge):
        self.charges.append(charge)
        if self.charge_error:
            raise PmsPostingFailed(self.charge_error)
        return ChargeResponse(success=True, transaction_id=f"TXN-{len(self.charges)}", status="posted")


@pytest.fixture
def today():
    return get_operational_date("America/Toronto")


@pytest.fixture
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def cache():
    return GuestCache()


@pytest.fixture
def fake_pms():
    return FakePMSAdapter()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def orchestrator(fake_pms, cache, sleeps):
    return SyncOrchestrator(
        fake_pms, cache,
        max_attempts=3, backoff_seconds=0.5, min_interval_seconds=60,
        sleep=sleeps.append,
    )


@pytest.fixture
def seed_property(db_session):
    """Crea una propiedad con sus habitaciones y la devuelve"""
    def _seed(property_id="PROP001", rooms=("101", "102", "204"), breakfast_price=None, timezone="America/Toronto"):
        prop = Property(
            property_id=property_id,
            name=f"Hotel {property_id}",
            timezone=timezone,
            breakfast_price=breakfast_price,
        )
        db_session.add(prop)
        for number in rooms:
            db_session.add(Room(
                property_id=property_id,
                room_number=number,
                floor=int(number[0]) if number[0].isdigit() else None,
                room_type="standard",
                max_occupancy=2,
                status=RoomStatus.AVAILABLE,
            ))
        db_session.commit()
        return prop
    return _seed


@pytest.fixture
def make_guest(today):
    def _make(guest_id="G1", room="204", check_in=None, check_out=None, breakfast=True,
              ohip_number=None, status="checked_in", reservation_id=None,
              is_vip=False, is_upset=False, special_requests=None):
        check_in = check_in or today - timedelta(days=1)
        check_out = check_out or today + timedelta(days=2)
        return PMSGuest(
            guest_id=guest_id,
            reservation_id=reservation_id or f"R-{guest_id}",
            room_number=room,
            first_name="Ana",
            last_name=f"Guest {guest_id}",
            check_in_date=check_in,
            check_out_date=check_out,
            breakfast_package=breakfast,
            breakfast_count=2 if breakfast else 0,
            ohip_number=ohip_number,
            status=status,
            is_vip=is_vip,
            is_upset=is_upset,
            special_requests=special_requests,
        )
    return _make


@pytest.fixture
def auth_headers():
    def _headers(role="staff", property_ids=("PROP001",), sub="staff-1"):
        token = create_access_token({
            "sub": sub,
            "name": f"{role.title()} User",
            "role": role,
            "property_ids": list(property_ids),
        })
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def client(db_session, fake_pms, cache, orchestrator):
    app.dependency_overrides[get_pms_adapter] = lambda: fake_pms
    app.dependency_overrides[get_guest_cache] = lambda: cache
    app.dependency_overrides[get_sync_orchestrator] = lambda: orchestrator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

