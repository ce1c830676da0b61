from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Boolean,
    ForeignKey,
    ForeignKeyConstraint,
    Text,
    UniqueConstraint,
    Index,
    Numeric,
    JSON,
    CheckConstraint,
    Enum,
)
from sqlalchemy.orm import relationship
from database.conexion import Base
from utils.timezone import utcnow
import enum


# ============================================================================
# ENUMS
# ============================================================================

class RoomStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    OUT_OF_ORDER = "out_of_order"


class ConsumptionStatus(str, enum.Enum):
    PENDING = "pending"
    CONSUMED = "consumed"
    NO_SHOW = "no_show"


class PaymentMethod(str, enum.Enum):
    ROOM_CHARGE = "room_charge"
    OHIP = "ohip"
    COMP = "comp"
    CASH = "cash"

    @property
    def posts_to_pms(self) -> bool:
        return self in (PaymentMethod.ROOM_CHARGE, PaymentMethod.OHIP)


class SyncResult(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class EventType(str, enum.Enum):
    """Tipos de eventos para auditoría"""
    CONSUMED = "consumed"
    PMS_POSTED = "pms_posted"
    PMS_POSTING_FAILED = "pms_posting_failed"
    DAY_CLOSED = "day_closed"
    PMS_SYNC = "pms_sync"


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


# ============================================================================
# PROPIEDAD / INVENTARIO DE HABITACIONES
# ============================================================================

class Property(Base):
    """Hotel (propiedad) identificado por el código que usa el PMS"""
    __tablename__ = "properties"

    property_id = Column(String(40), primary_key=True)
    name = Column(String(150), nullable=False)
    timezone = Column(String(64), nullable=True)
    breakfast_price = Column(Numeric(10, 2), nullable=True)  # NULL → precio por defecto de config
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    rooms = relationship("Room", back_populates="property", order_by="Room.room_number")
    sync_metadata = relationship("SyncMetadata", back_populates="property", uselist=False)


class Room(Base):
    """
    Habitación del inventario estático de la propiedad.
    Se crea/actualiza desde configuración, nunca desde la sincronización con el PMS.
    """
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("property_id", "room_number", name="uq_room_property_number"),
        Index("idx_room_property", "property_id"),
        Index("idx_room_status", "status"),
        CheckConstraint("max_occupancy >= 1", name="ck_room_max_occupancy"),
    )

    id = Column(Integer, primary_key=True)
    property_id = Column(String(40), ForeignKey("properties.property_id", ondelete="CASCADE"), nullable=False)
    room_number = Column(String(20), nullable=False)
    floor = Column(Integer, nullable=True)
    room_type = Column(String(40), nullable=False, default="standard")  # standard, deluxe, suite
    max_occupancy = Column(Integer, nullable=False, default=2)
    status = Column(
        Enum(RoomStatus, values_callable=_enum_values, name="room_status"),
        default=RoomStatus.AVAILABLE,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    property = relationship("Property", back_populates="rooms")


# ============================================================================
# LEDGER DE CONSUMOS
# ============================================================================

class ConsumptionRecord(Base):
    """
    Un registro por habitación por día.
    Solo transiciona pending → consumed (o pending → no_show al cerrar el día).
    Nunca se borra.
    """
    __tablename__ = "consumption_records"
    __table_args__ = (
        UniqueConstraint(
            "property_id", "room_number", "consumption_date",
            name="uq_consumption_property_room_date",
        ),
        ForeignKeyConstraint(
            ["property_id", "room_number"],
            ["rooms.property_id", "rooms.room_number"],
            name="fk_consumption_room",
        ),
        Index("idx_consumption_property_date", "property_id", "consumption_date"),
        Index("idx_consumption_status", "status"),
        CheckConstraint("amount >= 0", name="ck_consumption_amount"),
    )

    id = Column(Integer, primary_key=True)
    property_id = Column(String(40), ForeignKey("properties.property_id"), nullable=False)
    room_number = Column(String(20), nullable=False)
    consumption_date = Column(Date, nullable=False)
    guest_id = Column(String(64), nullable=False)  # pms_guest_id

    status = Column(
        Enum(ConsumptionStatus, values_callable=_enum_values, name="consumption_status"),
        default=ConsumptionStatus.PENDING,
        nullable=False,
    )
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    consumed_by = Column(String(64), nullable=True)  # staff id del token

    payment_method = Column(
        Enum(PaymentMethod, values_callable=_enum_values, name="payment_method"),
        nullable=True,
    )
    ohip_covered = Column(Boolean, default=False, nullable=False)
    pms_posted = Column(Boolean, default=False, nullable=False)
    pms_transaction_id = Column(String(100), nullable=True)
    pms_claimed_at = Column(DateTime(timezone=True), nullable=True)  # posteo en curso (lease)
    amount = Column(Numeric(10, 2), default=0, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============================================================================
# SINCRONIZACIÓN PMS
# ============================================================================

class SyncMetadata(Base):
    """Estado de la última sincronización por propiedad (se sobreescribe en cada intento)"""
    __tablename__ = "sync_metadata"

    property_id = Column(String(40), ForeignKey("properties.property_id", ondelete="CASCADE"), primary_key=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_result = Column(
        Enum(SyncResult, values_callable=_enum_values, name="sync_result"),
        nullable=True,
    )
    synced_count = Column(Integer, default=0, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    errors = Column(JSON, nullable=True)  # ["mensaje1", "mensaje2"]

    property = relationship("Property", back_populates="sync_metadata")


# ============================================================================
# AUDITORÍA
# ============================================================================

class ConsumptionEvent(Base):
    """
    Auditoría inmutable de las acciones sobre el ledger y la sincronización.
    Se escribe en la misma transacción que el cambio que registra.
    """
    __tablename__ = "consumption_events"
    __table_args__ = (
        Index("idx_consumption_event_property_date", "property_id", "consumption_date"),
        Index("idx_consumption_event_tipo", "tipo_evento"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    property_id = Column(String(40), ForeignKey("properties.property_id", ondelete="CASCADE"), nullable=False)
    room_number = Column(String(20), nullable=True)
    consumption_date = Column(Date, nullable=True)
    tipo_evento = Column(
        Enum(EventType, values_callable=_enum_values, name="consumption_event_type"),
        nullable=False,
    )
    usuario = Column(String(64), nullable=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    payload = Column(JSON, nullable=True)
    descripcion = Column(Text, nullable=True)
