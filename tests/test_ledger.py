"""
Tests del ledger de consumos: un registro por habitación/día, transiciones únicas
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from database.conexion import SessionLocal
from models.core import ConsumptionEvent, ConsumptionRecord, ConsumptionStatus, EventType, PaymentMethod
from services import ledger
from utils.errors import DayClosed, NoPendingRecord, ValidationError


DAY = date(2024, 3, 2)


def _mark(db, room="204", staff="staff-1", method=PaymentMethod.ROOM_CHARGE, guest_id="G1", day=DAY):
    return ledger.mark_consumed(
        db, "PROP001", room, day,
        consumed_by=staff,
        payment_method=method,
        ohip_covered=method == PaymentMethod.OHIP,
        notes=None,
        amount=Decimal("25.00"),
        guest_id=guest_id,
    )


def _count(db):
    return db.execute(select(func.count(ConsumptionRecord.id))).scalar()


class TestGetOrCreate:

    def test_creates_pending_record(self, db_session, seed_property):
        seed_property()
        record = ledger.get_or_create(db_session, "PROP001", "204", DAY, "G1")

        assert record.status == ConsumptionStatus.PENDING
        assert record.amount == Decimal("0")
        assert record.payment_method is None
        assert record.pms_posted is False

    def test_is_idempotent(self, db_session, seed_property):
        seed_property()
        first = ledger.get_or_create(db_session, "PROP001", "204", DAY, "G1")
        second = ledger.get_or_create(db_session, "PROP001", "204", DAY, "G2")

        assert first.id == second.id
        assert second.guest_id == "G1"
        assert _count(db_session) == 1


class TestMarkConsumed:

    def test_pending_becomes_consumed(self, db_session, seed_property):
        seed_property()
        ledger.get_or_create(db_session, "PROP001", "204", DAY, "G1")

        result = _mark(db_session)

        assert result.already_consumed is False
        assert result.record.status == ConsumptionStatus.CONSUMED
        assert result.record.consumed_by == "staff-1"
        assert result.record.consumed_at is not None
        assert result.record.amount == Decimal("25.00")

    def test_creates_record_when_missing(self, db_session, seed_property):
        seed_property()
        result = _mark(db_session)
        assert result.record.status == ConsumptionStatus.CONSUMED
        assert _count(db_session) == 1

    def test_second_mark_returns_original(self, db_session, seed_property):
        seed_property()
        first = _mark(db_session, staff="staff-1")
        second = _mark(db_session, staff="staff-2", method=PaymentMethod.CASH)

        assert second.already_consumed is True
        assert second.record.id == first.record.id
        assert second.record.consumed_by == "staff-1"
        assert second.record.payment_method == PaymentMethod.ROOM_CHARGE
        assert _count(db_session) == 1

    def test_missing_record_without_guest(self, db_session, seed_property):
        seed_property()
        with pytest.raises(NoPendingRecord):
            _mark(db_session, guest_id=None)

    def test_closed_day_cannot_be_marked(self, db_session, seed_property):
        seed_property()
        ledger.get_or_create(db_session, "PROP001", "204", DAY, "G1")
        assert ledger.close_day(db_session, "PROP001", DAY) == 1

        with pytest.raises(DayClosed):
            _mark(db_session)
        assert ledger.get(db_session, "PROP001", "204", DAY).status == ConsumptionStatus.NO_SHOW


class TestCloseDay:

    def test_only_pending_records_are_closed(self, db_session, seed_property):
        seed_property()
        ledger.get_or_create(db_session, "PROP001", "101", DAY, "G1")
        ledger.get_or_create(db_session, "PROP001", "102", DAY, "G2")
        _mark(db_session, room="204", guest_id="G3")

        assert ledger.close_day(db_session, "PROP001", DAY) == 2
        assert ledger.get(db_session, "PROP001", "204", DAY).status == ConsumptionStatus.CONSUMED
        assert ledger.close_day(db_session, "PROP001", DAY) == 0


class TestQueries:

    def test_history_is_ordered_by_date_then_room(self, db_session, seed_property):
        seed_property()
        _mark(db_session, room="204", day=DAY)
        _mark(db_session, room="101", day=DAY)
        _mark(db_session, room="102", day=DAY - timedelta(days=1))

        records = ledger.list_for_property(db_session, "PROP001", DAY - timedelta(days=1), DAY)
        assert [(r.consumption_date, r.room_number) for r in records] == [
            (DAY - timedelta(days=1), "102"),
            (DAY, "101"),
            (DAY, "204"),
        ]

    def test_history_range_validation(self, db_session, seed_property):
        seed_property()
        with pytest.raises(ValidationError):
            ledger.list_for_property(db_session, "PROP001", DAY, DAY - timedelta(days=1))
        with pytest.raises(ValidationError):
            ledger.list_for_property(db_session, "PROP001", DAY - timedelta(days=400), DAY)

    def test_unposted_only_includes_pms_methods(self, db_session, seed_property):
        seed_property()
        charged = _mark(db_session, room="204", method=PaymentMethod.ROOM_CHARGE)
        _mark(db_session, room="101", method=PaymentMethod.COMP)
        _mark(db_session, room="102", method=PaymentMethod.CASH)

        unposted = ledger.list_unposted(db_session, "PROP001")
        assert [r.room_number for r in unposted] == ["204"]

        ledger.record_pms_posting(db_session, charged.record.id, "TXN-1")
        assert ledger.list_unposted(db_session, "PROP001") == []

    def test_record_pms_posting(self, db_session, seed_property):
        seed_property()
        marked = _mark(db_session)
        record = ledger.record_pms_posting(db_session, marked.record.id, "TXN-9")
        assert record.pms_posted is True
        assert record.pms_transaction_id == "TXN-9"

    def test_only_room_charge_and_ohip_post_to_pms(self):
        assert {m for m in PaymentMethod if m.posts_to_pms} == {PaymentMethod.ROOM_CHARGE, PaymentMethod.OHIP}


class TestConcurrentMarks:
    """Varios dispositivos marcando la misma habitación al mismo tiempo"""

    def _race(self, fn, workers=4):
        barrier = threading.Barrier(workers)

        def run(index):
            db = SessionLocal()
            try:
                barrier.wait()
                return fn(db, index)
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(run, range(workers)))

    def test_one_mark_wins(self, db_session, seed_property):
        seed_property()

        results = self._race(lambda db, i: _mark(db, staff=f"staff-{i}").already_consumed)

        assert sorted(results) == [False, True, True, True]
        assert _count(db_session) == 1
        record = ledger.get(db_session, "PROP001", "204", DAY)
        assert record.status == ConsumptionStatus.CONSUMED

    def test_get_or_create_single_record(self, db_session, seed_property):
        seed_property()

        ids = self._race(lambda db, i: ledger.get_or_create(db, "PROP001", "204", DAY, f"G{i}").id)

        assert len(set(ids)) == 1
        assert _count(db_session) == 1


class TestPostingClaim:

    def test_claim_is_exclusive(self, db_session, seed_property):
        seed_property()
        marked = _mark(db_session)

        assert ledger.claim_pms_posting(db_session, marked.record.id) is True
        assert ledger.claim_pms_posting(db_session, marked.record.id) is False

    def test_expired_claim_can_be_taken(self, db_session, seed_property):
        seed_property()
        marked = _mark(db_session)
        ledger.claim_pms_posting(db_session, marked.record.id)

        assert ledger.claim_pms_posting(db_session, marked.record.id, lease_seconds=-1) is True

    def test_release_allows_new_claim(self, db_session, seed_property):
        seed_property()
        marked = _mark(db_session)
        ledger.claim_pms_posting(db_session, marked.record.id)

        record = ledger.release_pms_posting(db_session, marked.record.id, error="PMS timeout")

        assert record.pms_claimed_at is None
        assert record.pms_posted is False
        assert ledger.claim_pms_posting(db_session, marked.record.id) is True

    def test_posted_record_cannot_be_claimed(self, db_session, seed_property):
        seed_property()
        marked = _mark(db_session)
        ledger.claim_pms_posting(db_session, marked.record.id)

        record = ledger.record_pms_posting(db_session, marked.record.id, "TXN-1")

        assert record.pms_claimed_at is None
        assert ledger.claim_pms_posting(db_session, marked.record.id) is False

    def test_pending_record_cannot_be_claimed(self, db_session, seed_property):
        seed_property()
        record = ledger.get_or_create(db_session, "PROP001", "204", DAY, "G1")
        assert ledger.claim_pms_posting(db_session, record.id) is False


class TestAuditTrail:

    def _events(self, db):
        return list(db.execute(
            select(ConsumptionEvent).order_by(ConsumptionEvent.id)
        ).scalars())

    def test_fresh_mark_is_audited_once(self, db_session, seed_property):
        seed_property()
        _mark(db_session, staff="staff-1")
        _mark(db_session, staff="staff-2")

        events = self._events(db_session)
        assert [e.tipo_evento for e in events] == [EventType.CONSUMED]
        assert events[0].usuario == "staff-1"
        assert events[0].room_number == "204"
        assert events[0].consumption_date == DAY
        assert events[0].payload["payment_method"] == "room_charge"
        assert events[0].payload["amount"] == "25.00"

    def test_close_day_is_audited(self, db_session, seed_property):
        seed_property()
        ledger.get_or_create(db_session, "PROP001", "101", DAY, "G1")

        ledger.close_day(db_session, "PROP001", DAY, usuario="manager-1")

        events = self._events(db_session)
        assert [e.tipo_evento for e in events] == [EventType.DAY_CLOSED]
        assert events[0].usuario == "manager-1"
        assert events[0].payload == {"no_show": 1}

    def test_posting_outcomes_are_audited(self, db_session, seed_property):
        seed_property()
        marked = _mark(db_session)
        ledger.claim_pms_posting(db_session, marked.record.id)
        ledger.release_pms_posting(db_session, marked.record.id, usuario="staff-1", error="PMS timeout")
        ledger.record_pms_posting(db_session, marked.record.id, "TXN-7", usuario="staff-1")
        ledger.record_pms_posting(db_session, marked.record.id, "TXN-8", usuario="staff-1")

        tipos = [e.tipo_evento for e in self._events(db_session)]
        assert tipos == [EventType.CONSUMED, EventType.PMS_POSTING_FAILED, EventType.PMS_POSTED]
        posted = self._events(db_session)[-1]
        assert posted.payload["transaction_id"] == "TXN-7"
