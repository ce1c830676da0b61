"""
Reconciliador Room ↔ Guest

Cruza el inventario de habitaciones de la propiedad con el último set de
huéspedes sincronizado y devuelve la ocupación por habitación para una fecha.
Es una función pura: nunca llama al PMS ni escribe en la base.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from models.core import Room
from schemas.pms import PMSGuest


@dataclass(frozen=True)
class RoomOccupancy:
    room: Room
    guest: Optional[PMSGuest] = None
    competing_guest_ids: Tuple[str, ...] = ()

    @property
    def has_guest(self) -> bool:
        return self.guest is not None

    @property
    def has_breakfast(self) -> bool:
        return self.guest is not None and self.guest.breakfast_package


@dataclass
class ReconcileResult:
    as_of: date
    occupancies: List[RoomOccupancy] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def for_room(self, room_number: str) -> Optional[RoomOccupancy]:
        for occ in self.occupancies:
            if occ.room.room_number == room_number:
                return occ
        return None

    def guest_ids_by_room(self) -> Dict[str, Optional[str]]:
        return {
            occ.room.room_number: occ.guest.pms_guest_id if occ.guest else None
            for occ in self.occupancies
        }


def _pick_guest(candidates: List[PMSGuest]) -> PMSGuest:
    # Check-in más reciente; empate → pms_guest_id mayor (determinístico)
    return max(candidates, key=lambda g: (g.check_in_date, g.pms_guest_id))


def reconcile(rooms: Sequence[Room], guests: Sequence[PMSGuest], as_of: date) -> ReconcileResult:
    """
    Devuelve la ocupación de cada habitación para `as_of`.

    Si dos o más huéspedes activos comparten habitación (reservas solapadas)
    se elige uno y se agrega un warning; nunca lanza excepción.
    """
    result = ReconcileResult(as_of=as_of)
    known_rooms = {room.room_number for room in rooms}

    active_by_room: Dict[str, List[PMSGuest]] = {}
    for guest in guests:
        if not guest.is_active_on(as_of):
            continue
        if guest.room_number not in known_rooms:
            result.warnings.append(
                f"Guest {guest.pms_guest_id} is assigned to unknown room {guest.room_number}"
            )
            continue
        active_by_room.setdefault(guest.room_number, []).append(guest)

    for room in sorted(rooms, key=_room_sort_key):
        candidates = active_by_room.get(room.room_number, [])
        if not candidates:
            result.occupancies.append(RoomOccupancy(room=room))
            continue

        chosen = _pick_guest(candidates)
        competing = tuple(sorted(g.pms_guest_id for g in candidates if g is not chosen))
        if competing:
            result.warnings.append(
                f"Room {room.room_number} has {len(candidates)} overlapping active guests "
                f"({', '.join(sorted(g.pms_guest_id for g in candidates))}); using {chosen.pms_guest_id}"
            )
        result.occupancies.append(RoomOccupancy(room=room, guest=chosen, competing_guest_ids=competing))

    return result


def _room_sort_key(room: Room):
    # "204" antes que "1001"; números no numéricos al final en orden alfabético
    number = room.room_number
    return (0, int(number), number) if number.isdigit() else (1, 0, number)
