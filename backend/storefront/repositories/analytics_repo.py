import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.models.analytics_event import AnalyticsEvent
from storefront.utils.transactions import smart_transaction

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ok:
    pass


@dataclass(frozen=True)
class Degraded:
    reason: str


WriteOutcome = Union[Ok, Degraded]


class AnalyticsRepository:
    def __init__(self, db: Session):
        self.db = db

    def record_event(
        self,
        store_slug: str,
        event_type: str,
        product_id: Optional[str] = None,
        session_id: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> WriteOutcome:
        """
        Best-effort insert of one analytics row. Never raises for database
        errors; the outcome is only meant to be logged by the caller.
        """
        try:
            with smart_transaction(self.db):
                self.db.add(
                    AnalyticsEvent(
                        store_slug=store_slug,
                        event_type=event_type,
                        product_id=product_id,
                        session_id=session_id,
                        user_agent=user_agent,
                        ip_address=ip_address,
                        event_metadata=metadata,
                    )
                )
            return Ok()
        except SQLAlchemyError as e:
            log.debug("analytics insert failed", exc_info=True)
            return Degraded(reason=f"{type(e).__name__}: {e}")
