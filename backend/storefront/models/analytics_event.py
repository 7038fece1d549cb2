from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String

from storefront.db import Base


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_slug = Column(String(50), nullable=False, index=True)
    event_type = Column(String(32), nullable=False)  # product_view
    product_id = Column(String(36), nullable=True, index=True)
    session_id = Column(String(128), nullable=True)
    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(64), nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
