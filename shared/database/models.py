"""Modelos SQLAlchemy del backend de eventos y check-in"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, false
from shared.database.connection import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)  # ID del usuario en el proveedor de auth
    email = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, server_default="student")  # student, organizer, admin
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relaciones
    registrations = relationship("EventRegistration", back_populates="user")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organizer_id = Column(String, ForeignKey("profiles.id"), nullable=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relaciones
    organizer = relationship("Profile", foreign_keys=[organizer_id])
    registrations = relationship("EventRegistration", back_populates="event")
    checkins = relationship("EventCheckin", back_populates="event")


class EventRegistration(Base):
    __tablename__ = "event_registrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    participant_name = Column(String, nullable=True)
    roll_number = Column(String, nullable=True)
    department = Column(String, nullable=True)
    year = Column(String, nullable=True)
    class_name = Column("class", String, nullable=True)  # Curso/semestre
    profile_photo_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relaciones
    event = relationship("Event", back_populates="registrations")
    user = relationship("Profile", back_populates="registrations")
    checkin = relationship("EventCheckin", back_populates="registration", uselist=False)


class EventCheckin(Base):
    """Registro de admisión. El backend es el único que lo escribe"""
    __tablename__ = "event_checkins"
    __table_args__ = (
        UniqueConstraint("registration_id", name="uq_event_checkins_registration"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    registration_id = Column(Integer, ForeignKey("event_registrations.id"), nullable=False)
    qr_token = Column(Text, nullable=True)  # NULL si se creó al primer escaneo
    issued_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_checked_in = Column(Boolean, nullable=False, default=False, server_default=false())
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    checked_in_by = Column(String, ForeignKey("profiles.id"), nullable=True)  # Operador que escaneó

    # Relaciones
    event = relationship("Event", back_populates="checkins")
    registration = relationship("EventRegistration", back_populates="checkin")
    operator = relationship("Profile", foreign_keys=[checked_in_by])
