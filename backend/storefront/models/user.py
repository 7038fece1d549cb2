import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship

from storefront.db import Base


def _now():
    return datetime.now(timezone.utc)


class User(Base):
    """A vendor account; the store columns are what the public catalog exposes."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(254), unique=True, nullable=False)
    store_slug = Column(String(50), unique=True, index=True, nullable=True)
    store_name = Column(String(100), nullable=True)
    whatsapp_number = Column(String(15), nullable=True)
    onboarding_completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    products = relationship("Product", back_populates="owner", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User store_slug={self.store_slug} email={self.email}>"
