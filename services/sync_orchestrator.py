"""
Sync Orchestrator - PMS → cache de huéspedes

- Reintenta fallas del PMS con backoff exponencial hasta PMS_SYNC_MAX_ATTEMPTS.
- complete=True: el batch reemplaza el snapshot anterior.
- complete=False: lo obtenido se superpone al snapshot anterior y se reportan
  los errores (sync parcial).
- Siempre actualiza SyncMetadata, salvo cuando se saltea por intervalo mínimo.
- Tras una sync fallida, las syncs no forzadas esperan el intervalo mínimo
  antes de volver a llamar al PMS (con o sin snapshot en memoria).
"""
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

import config
from models.core import EventType, Property, SyncMetadata, SyncResult
from schemas.pms import PMSGuest
from schemas.room_grid import PMSIntegrationStatus, PMSSyncResponse
from services import ledger
from services.audit import record_event
from services.guest_cache import GuestCache, GuestSnapshot
from services.pms_adapter import FetchResult, PMSAdapter
from services.projector import load_rooms
from services.reconciler import reconcile
from utils.errors import NotFound, PmsAdapterFailure
from utils.logging_utils import log_event, log_warning
from utils.timezone import get_operational_date, utcnow


def _as_aware(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite devuelve datetimes naive (UTC)
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=utcnow().tzinfo)
    return dt


class SyncOrchestrator:

    def __init__(
        self,
        adapter: PMSAdapter,
        cache: GuestCache,
        max_attempts: int = None,
        backoff_seconds: float = None,
        min_interval_seconds: int = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.adapter = adapter
        self.cache = cache
        self.max_attempts = max(1, max_attempts or config.PMS_SYNC_MAX_ATTEMPTS)
        self.backoff_seconds = config.PMS_SYNC_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self.min_interval = timedelta(
            seconds=config.PMS_SYNC_MIN_INTERVAL_SECONDS if min_interval_seconds is None else min_interval_seconds
        )
        self.sleep = sleep

    # ------------------------------------------------------------------ fetch

    def _fetch_with_retry(self, property_id: str) -> tuple:
        """Devuelve (FetchResult | None, errores, intentos)"""
        errors: List[str] = []
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.adapter.fetch_guests(property_id), errors, attempt
            except PmsAdapterFailure as e:
                errors.append(f"Attempt {attempt}/{self.max_attempts}: {e.message}")
                log_warning("pms_sync", "system", "Falla PMS", f"property_id={property_id}, intento={attempt}, error={e.message}")
                if attempt < self.max_attempts:
                    self.sleep(self.backoff_seconds * (2 ** (attempt - 1)))
        return None, errors, self.max_attempts

    # ------------------------------------------------------------------ sync

    def sync_from_pms(self, db: Session, property_id: str, force: bool = False, usuario: str = "system") -> PMSSyncResponse:
        prop = db.get(Property, property_id)
        if prop is None:
            raise NotFound(f"Property {property_id} not found")

        with _property_lock(property_id):
            metadata = db.get(SyncMetadata, property_id)
            if not force and self._in_cooldown(metadata):
                return PMSSyncResponse(
                    synced_guests=len(self.cache.get(property_id)),
                    updated_rooms=0,
                    errors=list(metadata.errors or []),
                    message="Skipped: last PMS sync failed within the minimum interval",
                    result="skipped",
                )
            if not force and self.cache.has_snapshot(property_id) and self._recently_synced(metadata):
                snapshot = self.cache.get(property_id)
                return PMSSyncResponse(
                    synced_guests=len(snapshot),
                    updated_rooms=0,
                    errors=[],
                    message="Skipped: last sync is within the minimum interval",
                    result="skipped",
                )

            fetched, retry_errors, attempts = self._fetch_with_retry(property_id)
            now = utcnow()

            if fetched is None:
                self._save_metadata(db, property_id, now, SyncResult.FAILURE, 0, attempts, retry_errors, usuario)
                log_event("pms_sync", usuario, "Sync fallida", f"property_id={property_id}, intentos={attempts}")
                return PMSSyncResponse(
                    synced_guests=0,
                    updated_rooms=0,
                    errors=retry_errors,
                    message="PMS unavailable; previous guest data retained",
                    result=SyncResult.FAILURE.value,
                )

            response = self._apply(db, prop, fetched, now, attempts, usuario)
            log_event(
                "pms_sync", usuario, "Sync completada",
                f"property_id={property_id}, resultado={response.result}, huespedes={response.synced_guests}, "
                f"habitaciones_actualizadas={response.updated_rooms}, errores={len(response.errors)}",
            )
            return response

    def _within_interval(self, metadata: Optional[SyncMetadata], result: SyncResult) -> bool:
        if metadata is None or metadata.last_sync_at is None:
            return False
        if metadata.last_result != result:
            return False
        return utcnow() - _as_aware(metadata.last_sync_at) < self.min_interval

    def _recently_synced(self, metadata: Optional[SyncMetadata]) -> bool:
        return self._within_interval(metadata, SyncResult.SUCCESS)

    def _in_cooldown(self, metadata: Optional[SyncMetadata]) -> bool:
        return self._within_interval(metadata, SyncResult.FAILURE)

    def _apply(self, db: Session, prop: Property, fetched: FetchResult, now: datetime, attempts: int, usuario: str) -> PMSSyncResponse:
        property_id = prop.property_id
        rooms = load_rooms(db, property_id)
        room_numbers = {r.room_number for r in rooms}
        errors = list(fetched.errors)

        accepted: Dict[str, PMSGuest] = {}
        for guest in fetched.guests:
            if guest.room_number not in room_numbers:
                errors.append(f"Guest {guest.pms_guest_id} references unknown room {guest.room_number}")
                continue
            accepted[guest.pms_guest_id] = guest

        previous = self.cache.get(property_id)
        if fetched.complete:
            merged = accepted
        else:
            # Lo que no llegó en esta corrida se conserva del snapshot anterior
            merged = previous.by_id()
            merged.update(accepted)

        snapshot = self.cache.replace(property_id, merged.values(), synced_at=now)

        today = get_operational_date(prop.timezone)
        updated_rooms = self._count_changed_rooms(rooms, previous, snapshot, today)
        self._ensure_pending_records(db, rooms, snapshot, today)

        result = SyncResult.SUCCESS if fetched.complete and not errors else SyncResult.PARTIAL
        self._save_metadata(db, property_id, now, result, len(accepted), attempts, errors, usuario)

        return PMSSyncResponse(
            synced_guests=len(accepted),
            updated_rooms=updated_rooms,
            errors=errors,
            message=(
                f"Synced {len(accepted)} guests from PMS"
                if result == SyncResult.SUCCESS
                else f"Partial sync: {len(accepted)} guests applied, {len(errors)} errors"
            ),
            result=result.value,
        )

    @staticmethod
    def _count_changed_rooms(rooms, previous: GuestSnapshot, current: GuestSnapshot, today) -> int:
        before = reconcile(rooms, previous.guests, today).guest_ids_by_room()
        after = reconcile(rooms, current.guests, today).guest_ids_by_room()
        return sum(1 for number, guest_id in after.items() if before.get(number) != guest_id)

    @staticmethod
    def _ensure_pending_records(db: Session, rooms, snapshot: GuestSnapshot, today) -> None:
        for occ in reconcile(rooms, snapshot.guests, today).occupancies:
            if occ.has_breakfast:
                ledger.get_or_create(db, occ.room.property_id, occ.room.room_number, today, occ.guest.pms_guest_id)

    @staticmethod
    def _save_metadata(
        db: Session,
        property_id: str,
        now: datetime,
        result: SyncResult,
        count: int,
        attempts: int,
        errors: List[str],
        usuario: str = "system",
    ) -> None:
        metadata = db.get(SyncMetadata, property_id)
        if metadata is None:
            metadata = SyncMetadata(property_id=property_id)
            db.add(metadata)
        metadata.last_sync_at = now
        metadata.last_result = result
        metadata.synced_count = count
        metadata.attempts = attempts
        metadata.errors = list(errors)
        record_event(
            db, EventType.PMS_SYNC, usuario, property_id,
            payload={"result": result.value, "synced_guests": count, "attempts": attempts, "errors": list(errors)},
            descripcion=f"Sync PMS: {result.value}",
        )
        db.commit()

    # ------------------------------------------------------------------ status

    def status(self, db: Session, property_id: str) -> PMSIntegrationStatus:
        if db.get(Property, property_id) is None:
            raise NotFound(f"Property {property_id} not found")
        metadata = db.get(SyncMetadata, property_id)
        cached = len(self.cache.get(property_id))
        if metadata is None:
            return PMSIntegrationStatus(property_id=property_id, cached_guests=cached)
        return PMSIntegrationStatus(
            property_id=property_id,
            last_sync_at=metadata.last_sync_at,
            last_result=metadata.last_result.value if metadata.last_result else None,
            synced_count=metadata.synced_count,
            attempts=metadata.attempts,
            errors=metadata.errors or [],
            cached_guests=cached,
        )


# Un lock por propiedad: syncs concurrentes de la misma propiedad se serializan
_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _property_lock(property_id: str) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(property_id)
        if lock is None:
            lock = _locks[property_id] = threading.Lock()
        return lock
