"""
User model: the person reference carried by registrations.
Credentials live with the identity provider, not here.
"""

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from eventdesk.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    display_name = Column(String(255), nullable=False, default="")
    role = Column(String(50), nullable=False, default="member")

    registrations = relationship("Registration", back_populates="user")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
