"""
Cache en memoria de huéspedes sincronizados desde el PMS, por propiedad.

Cada propiedad tiene un GuestSnapshot inmutable. La sincronización arma un
snapshot nuevo y lo reemplaza de una sola vez: los lectores ven el set viejo
completo o el nuevo completo, nunca uno a medio aplicar.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Optional, Tuple

from schemas.pms import PMSGuest


@dataclass(frozen=True)
class GuestSnapshot:
    property_id: str
    guests: Tuple[PMSGuest, ...] = ()
    synced_at: Optional[datetime] = None

    def by_id(self) -> Dict[str, PMSGuest]:
        return {g.pms_guest_id: g for g in self.guests}

    def __len__(self) -> int:
        return len(self.guests)


@dataclass
class GuestCache:
    _snapshots: Dict[str, GuestSnapshot] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def get(self, property_id: str) -> GuestSnapshot:
        # Lectura de un solo puntero: no necesita lock
        snapshot = self._snapshots.get(property_id)
        if snapshot is None:
            return GuestSnapshot(property_id=property_id)
        return snapshot

    def has_snapshot(self, property_id: str) -> bool:
        return property_id in self._snapshots

    def replace(self, property_id: str, guests: Iterable[PMSGuest], synced_at: datetime) -> GuestSnapshot:
        ordered = tuple(sorted(guests, key=lambda g: (g.room_number, g.pms_guest_id)))
        snapshot = GuestSnapshot(property_id=property_id, guests=ordered, synced_at=synced_at)
        with self._lock:
            self._snapshots[property_id] = snapshot
        return snapshot

    def clear(self, property_id: Optional[str] = None) -> None:
        with self._lock:
            if property_id is None:
                self._snapshots.clear()
            else:
                self._snapshots.pop(property_id, None)


# Instancia del proceso; los endpoints la reciben vía Depends(get_guest_cache)
guest_cache = GuestCache()


def get_guest_cache() -> GuestCache:
    return guest_cache
