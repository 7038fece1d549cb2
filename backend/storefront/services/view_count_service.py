import logging
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from storefront.db import BackendClient
from storefront.repositories.analytics_repo import AnalyticsRepository, Degraded, WriteOutcome
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.view_count_schema import ViewCountRequest
from storefront.utils.transactions import short_lived_session

log = logging.getLogger(__name__)

PRODUCT_VIEW = "product_view"


class ViewCountUpdateError(Exception):
    pass


class ViewCountService:
    """
    Records one product view: an analytics row (best-effort) followed by the
    view counter increment (must succeed). The two writes are independent.
    """

    def __init__(self, client: BackendClient):
        self.client = client

    def record_analytics(
        self, req: ViewCountRequest, client_ip: str, referrer: Optional[str] = None
    ) -> WriteOutcome:
        with short_lived_session(self.client.session) as db:
            return AnalyticsRepository(db).record_event(
                store_slug=req.store_slug,
                event_type=PRODUCT_VIEW,
                product_id=req.product_id,
                session_id=req.session_id or f"session_{int(time.time() * 1000)}",
                user_agent=req.user_agent,
                ip_address=client_ip,
                metadata={
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "referrer": referrer,
                },
            )

    def increment(self, product_id: str) -> int:
        try:
            with short_lived_session(self.client.session) as db:
                return ProductRepository(db).increment_product_views(product_id)
        except SQLAlchemyError as e:
            log.error("Update error for product %s: %s", product_id, e)
            raise ViewCountUpdateError("Failed to update view count") from e

    def record_view(self, req: ViewCountRequest, client_ip: str, referrer: Optional[str] = None) -> int:
        outcome = self.record_analytics(req, client_ip, referrer)
        if isinstance(outcome, Degraded):
            log.error("Analytics error (ignored): %s", outcome.reason)
        touched = self.increment(req.product_id)
        if not touched:
            log.info("increment_product_views: no product with id %s", req.product_id)
        return touched
