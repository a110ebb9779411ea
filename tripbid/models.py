from datetime import datetime, timezone
from sqlalchemy import (
    Table,
    Column,
    Integer,
    String,
    Float,
    Numeric,
    DateTime,
    Text,
    ForeignKey,
    MetaData,
    UniqueConstraint,
)


# Status constants
TRIP_PENDING = "pending"
TRIP_DRIVER_ASSIGNED = "driver_assigned"
TRIP_DRIVER_ARRIVED = "driver_arrived"
TRIP_IN_PROGRESS = "in_progress"
TRIP_COMPLETED = "completed"
TRIP_CANCELLED = "cancelled"

TRIP_STATUSES = (
    TRIP_PENDING,
    TRIP_DRIVER_ASSIGNED,
    TRIP_DRIVER_ARRIVED,
    TRIP_IN_PROGRESS,
    TRIP_COMPLETED,
    TRIP_CANCELLED,
)
TRIP_TERMINAL = (TRIP_COMPLETED, TRIP_CANCELLED)

BID_PENDING = "pending"
BID_ACCEPTED = "accepted"
BID_REJECTED = "rejected"

BID_STATUSES = (BID_PENDING, BID_ACCEPTED, BID_REJECTED)

VEHICLE_PENDING = "pending"
VEHICLE_APPROVED = "approved"
VEHICLE_REJECTED = "rejected"

FEE_PAID = "paid"
FEE_UNPAID = "unpaid"
FEE_EXPIRED = "expired"

ROLE_RIDER = "rider"
ROLE_DRIVER = "driver"
ROLE_SYSTEM = "system"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("first_name", String(100), nullable=True),
    Column("last_name", String(100), nullable=True),
    Column("phone", String(20), nullable=True),
    Column("user_type", String(20), nullable=False),
)

riders = Table(
    "riders",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), unique=True, nullable=False),
    Column("rating", Numeric(3, 2), default=0),
    Column("total_trips", Integer, default=0),
)

drivers = Table(
    "drivers",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), unique=True, nullable=False),
    Column("daily_fee_status", String(20), default=FEE_UNPAID),
    Column("current_latitude", Float, nullable=True),
    Column("current_longitude", Float, nullable=True),
    Column("last_location_update", DateTime(timezone=True), nullable=True),
    Column("rating", Numeric(3, 2), default=0),
    Column("total_trips", Integer, default=0),
)

vehicles = Table(
    "vehicles",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("driver_id", Integer, ForeignKey("drivers.id"), nullable=False),
    Column("make", String(50), nullable=True),
    Column("model", String(50), nullable=True),
    Column("plate_number", String(20), nullable=True),
    Column("color", String(30), nullable=True),
    Column("status", String(20), default=VEHICLE_PENDING),
)

trips = Table(
    "trips",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("rider_id", Integer, ForeignKey("riders.id"), nullable=False),
    Column("driver_id", Integer, ForeignKey("drivers.id"), nullable=True),
    Column("vehicle_id", Integer, ForeignKey("vehicles.id"), nullable=True),
    Column("start_address", String(500), nullable=False),
    Column("start_latitude", Float, nullable=False),
    Column("start_longitude", Float, nullable=False),
    Column("end_address", String(500), nullable=False),
    Column("end_latitude", Float, nullable=False),
    Column("end_longitude", Float, nullable=False),
    Column("distance_km", Numeric(10, 2), nullable=False),
    Column("estimated_fare", Numeric(10, 2), nullable=False),
    Column("final_fare", Numeric(10, 2), nullable=True),
    Column("notes", Text, nullable=True),
    Column("status", String(20), default=TRIP_PENDING, index=True),
    Column("created_at", DateTime(timezone=True), default=utcnow),
    Column("driver_assigned_at", DateTime(timezone=True), nullable=True),
    Column("started_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    Column("cancelled_by", String(20), nullable=True),
)

bids = Table(
    "bids",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("trip_id", Integer, ForeignKey("trips.id"), nullable=False, index=True),
    Column("driver_id", Integer, ForeignKey("drivers.id"), nullable=False),
    Column("amount", Numeric(10, 2), nullable=False),
    Column("message", Text, nullable=True),
    Column("estimated_arrival_time", Integer, nullable=True),
    Column("status", String(20), default=BID_PENDING),
    Column("created_at", DateTime(timezone=True), default=utcnow),
    UniqueConstraint("trip_id", "driver_id", name="uq_bids_trip_driver"),
)
