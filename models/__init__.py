"""
Archivo de inicialización del paquete models.
Expone todas las clases para que SQLAlchemy (Base.metadata) las detecte
al importar 'models'.
"""

from .core import (
    RoomStatus,
    ConsumptionStatus,
    PaymentMethod,
    SyncResult,
    EventType,
    Property,
    Room,
    ConsumptionRecord,
    SyncMetadata,
    ConsumptionEvent,
)

__all__ = [
    "RoomStatus", "ConsumptionStatus", "PaymentMethod", "SyncResult", "EventType",
    "Property", "Room", "ConsumptionRecord", "SyncMetadata", "ConsumptionEvent",
]
