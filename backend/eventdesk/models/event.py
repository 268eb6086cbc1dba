"""
Event model with capacity and ticket tier definitions.

Key design decisions:
- Tiers, custom-field schema and invite list are JSON columns: they are read
  whole with the event and never queried individually
- Seat counts are NOT stored here; the capacity ledger owns them
- Index on `start_time` for "events today" lookups (kiosk self check-in)
"""

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from eventdesk.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    location = Column(String(255), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    capacity = Column(Integer, nullable=False)
    tiers = Column(JSON, nullable=False, default=list)  # [{name, capacity, price}]
    custom_fields = Column(JSON, nullable=False, default=list)  # [{name, required, label}]
    invited_emails = Column(JSON, nullable=False, default=list)
    visibility = Column(String(20), nullable=False, default="PUBLIC")
    status = Column(String(20), nullable=False, default="UPCOMING")
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    registrations = relationship("Registration", back_populates="event")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_event_capacity_positive"),
        CheckConstraint("end_time >= start_time", name="check_event_time_order"),
        CheckConstraint("visibility IN ('PUBLIC', 'PRIVATE')", name="check_event_visibility"),
        CheckConstraint(
            "status IN ('UPCOMING', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED')",
            name="check_event_status",
        ),
        Index("ix_events_start_time", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, capacity={self.capacity})>"
