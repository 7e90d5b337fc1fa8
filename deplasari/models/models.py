from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    Text,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


# Assignment lifecycle
STATUS_ASSIGNED = "Asigned"  # spelled as stored in existing data
STATUS_IN_PROGRESS = "In Deplasare"
STATUS_COMPLETED = "Finalizat"

# User availability
USER_FREE = "Liber"

WORK_TYPES = ("deschidere", "interventie", "optimizare")


class User(Base):
    """Team members; a user's status mirrors their most recent active assignment"""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    role: Mapped[Optional[str]] = mapped_column(String(50))  # admin|user
    username: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[Optional[str]] = mapped_column(String(50), default=USER_FREE, index=True)  # Liber|Asigned|In Deplasare
    current_assignment: Mapped[Optional[str]] = mapped_column(String(255))  # assignment id or "{type} - {location}"
    total_hours: Mapped[float] = mapped_column(Float, default=0)
    profile_photo: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    work_logs = relationship("WorkLog", back_populates="user", cascade="all, delete-orphan")


class Assignment(Base):
    """A field trip of one team (lead + members) to a store"""
    __tablename__ = "assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)  # Deschidere|Interventie|Optimizare
    location: Mapped[Optional[str]] = mapped_column(String(255))
    team_lead: Mapped[str] = mapped_column(String(255), nullable=False, index=True)  # user name
    members: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # list of user names
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)
    status: Mapped[str] = mapped_column(String(50), default=STATUS_ASSIGNED, index=True)
    hours: Mapped[Optional[float]] = mapped_column(Float, default=0)
    km: Mapped[Optional[float]] = mapped_column(Float, default=0)
    driving_time: Mapped[Optional[float]] = mapped_column(Float, default=0)  # minutes
    store_number: Mapped[Optional[str]] = mapped_column(String(50))
    county: Mapped[Optional[str]] = mapped_column(String(100))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    magazin: Mapped[Optional[str]] = mapped_column(String(255))
    county_code: Mapped[Optional[str]] = mapped_column(String(10))
    start_location: Mapped[Optional[str]] = mapped_column(String(255))
    end_location: Mapped[Optional[str]] = mapped_column(String(255))
    store_points: Mapped[Optional[list]] = mapped_column(JSON)  # ordered store ids
    route_updated: Mapped[bool] = mapped_column(Boolean, default=False)
    car_plate: Mapped[Optional[str]] = mapped_column(String(20), index=True)
    gps_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))  # inferred departure
    return_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))  # inferred return to depot
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    work_logs = relationship("WorkLog", back_populates="assignment")

    __table_args__ = (
        Index("idx_assignment_status_start", "status", "start_date"),
    )


class WorkLog(Base):
    """Hours credited to one user for one finalized assignment"""
    __tablename__ = "work_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assignment_id: Mapped[int] = mapped_column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    work_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    hours: Mapped[float] = mapped_column(Float, default=0)
    kilometers: Mapped[float] = mapped_column(Float, default=0)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    user = relationship("User", back_populates="work_logs")
    assignment = relationship("Assignment", back_populates="work_logs")


class VehiclePresence(Base):
    """Periodic GPS snapshots of each car relative to the depot"""
    __tablename__ = "vehicle_presence"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    car_plate: Mapped[str] = mapped_column(String(20), nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    was_near_chitila: Mapped[bool] = mapped_column(Boolean, default=False)
    distance_from_chitila: Mapped[Optional[str]] = mapped_column(String(50))  # free text, e.g. "4.2" or "12.5 km"
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)

    __table_args__ = (
        Index("idx_presence_car_plate_detected", "car_plate", "detected_at"),
        Index("idx_vehicle_departure", "car_plate", "detected_at", "was_near_chitila"),
        Index("idx_vehicle_distance", "car_plate", "detected_at", "distance_from_chitila"),
    )


class Store(Base):
    __tablename__ = "stores"

    store_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    city: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    county: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Locality(Base):
    """Romanian localities (nume) grouped by county (judet)"""
    __tablename__ = "localitati"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nume: Mapped[str] = mapped_column(String(255), nullable=False)
    judet: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
