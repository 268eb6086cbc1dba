"""
Registration and check-in record models.

Key design decisions:
- Partial unique index on (event_id, user_id) for non-cancelled rows: at most
  one active registration per person per event, while cancelled history is kept
- Status is soft: rows are never deleted
- `checkin_records.registration_id` is unique, so a second check-in insert
  fails at the database even if two verifiers race
"""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from eventdesk.db.base import Base, TimestampMixin


class Registration(Base, TimestampMixin):
    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tier = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False)
    waitlist_position = Column(Integer, nullable=True)
    answers = Column(JSON, nullable=False, default=dict)
    seat_token = Column(String(64), nullable=True)
    ticket_code = Column(String(255), nullable=True)

    event = relationship("Event", back_populates="registrations")
    user = relationship("User", back_populates="registrations")
    check_in = relationship("CheckInRecord", back_populates="registration", uselist=False)

    __table_args__ = (
        Index(
            "uq_active_registration",
            "event_id",
            "user_id",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
        Index("ix_registrations_waitlist", "event_id", "status", "waitlist_position"),
        CheckConstraint(
            "status IN ('REGISTERED', 'WAITLISTED', 'CANCELLED', 'ATTENDED')",
            name="check_registration_status",
        ),
        CheckConstraint(
            "(status = 'WAITLISTED') = (waitlist_position IS NOT NULL)",
            name="check_waitlist_position_only_when_waitlisted",
        ),
    )

    def __repr__(self) -> str:
        return f"<Registration(id={self.id}, event={self.event_id}, user={self.user_id}, status={self.status})>"


class CheckInRecord(Base):
    __tablename__ = "checkin_records"

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(Integer, ForeignKey("registrations.id"), nullable=False, unique=True)
    checked_in_at = Column(DateTime(timezone=True), nullable=False)
    method = Column(String(20), nullable=False)
    idempotency_key = Column(String(64), nullable=False, unique=True)

    registration = relationship("Registration", back_populates="check_in")

    __table_args__ = (
        CheckConstraint("method IN ('SCANNED', 'SELF_SERVICE')", name="check_checkin_method"),
    )
