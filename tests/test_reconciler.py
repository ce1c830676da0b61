"""
Tests del reconciliador Room ↔ Guest (función pura, sin base de datos)
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import date

from models.core import Room, RoomStatus
from schemas.pms import PMSGuest
from services.reconciler import reconcile


DAY = date(2024, 3, 2)


def _room(number):
    return Room(property_id="PROP001", room_number=number, room_type="standard", status=RoomStatus.AVAILABLE)


def _guest(guest_id, room, check_in=date(2024, 3, 1), check_out=date(2024, 3, 5), breakfast=True, status="checked_in"):
    return PMSGuest(
        guest_id=guest_id,
        reservation_id=f"R-{guest_id}",
        room_number=room,
        check_in_date=check_in,
        check_out_date=check_out,
        breakfast_package=breakfast,
        status=status,
    )


class TestOccupancy:
    """Un huésped activo por habitación"""

    def test_active_guest_is_assigned_to_room(self):
        result = reconcile([_room("204"), _room("101")], [_guest("G1", "204")], DAY)

        occ = result.for_room("204")
        assert occ.guest.pms_guest_id == "G1"
        assert occ.has_breakfast is True
        assert result.for_room("101").has_guest is False
        assert result.warnings == []

    def test_checkout_day_is_not_active(self):
        guest = _guest("G1", "204", check_in=date(2024, 2, 28), check_out=DAY)
        result = reconcile([_room("204")], [guest], DAY)
        assert result.for_room("204").has_guest is False

    def test_checked_out_and_no_show_are_ignored(self):
        guests = [_guest("G1", "204", status="checked_out"), _guest("G2", "101", status="no_show")]
        result = reconcile([_room("204"), _room("101")], guests, DAY)
        assert all(not occ.has_guest for occ in result.occupancies)

    def test_guest_without_package_has_no_breakfast(self):
        result = reconcile([_room("204")], [_guest("G1", "204", breakfast=False)], DAY)
        occ = result.for_room("204")
        assert occ.has_guest is True
        assert occ.has_breakfast is False


class TestConflicts:
    """Reservas solapadas y huéspedes en habitaciones desconocidas"""

    def test_latest_check_in_wins_and_warns(self):
        older = _guest("G1", "204", check_in=date(2024, 2, 28))
        newer = _guest("G2", "204", check_in=date(2024, 3, 1))
        result = reconcile([_room("204")], [newer, older], DAY)

        occ = result.for_room("204")
        assert occ.guest.pms_guest_id == "G2"
        assert occ.competing_guest_ids == ("G1",)
        assert len(result.warnings) == 1
        assert "204" in result.warnings[0]

    def test_same_check_in_uses_highest_guest_id(self):
        result = reconcile([_room("204")], [_guest("G10", "204"), _guest("G20", "204")], DAY)
        assert result.for_room("204").guest.pms_guest_id == "G20"

    def test_unknown_room_is_a_warning_not_an_error(self):
        result = reconcile([_room("204")], [_guest("G1", "999")], DAY)
        assert result.for_room("204").has_guest is False
        assert any("999" in w for w in result.warnings)


class TestOrdering:

    def test_rooms_are_sorted_numerically(self):
        rooms = [_room("1001"), _room("204"), _room("99"), _room("PH1")]
        result = reconcile(rooms, [], DAY)
        assert [occ.room.room_number for occ in result.occupancies] == ["99", "204", "1001", "PH1"]

    def test_guest_ids_by_room(self):
        result = reconcile([_room("101"), _room("204")], [_guest("G1", "204")], DAY)
        assert result.guest_ids_by_room() == {"101": None, "204": "G1"}
