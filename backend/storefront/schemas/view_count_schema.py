from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ViewCountRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
    product_id: Optional[str] = None
    store_slug: Optional[str] = None
    session_id: Optional[str] = None
    user_agent: Optional[str] = None

    def missing_required(self) -> bool:
        return not self.product_id or not self.store_slug
