# SPDX-License-Identifier: Apache-2.0

"""
Deal registry: read-only deal lookups.
"""

import logging
from typing import Optional

from ..models.entities import DealSummary
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)


class DealRegistry:
    """Reads deal summaries from the deals collection."""

    def __init__(self, mongo_service: MongoDBService):
        self.mongo_service = mongo_service
        self.collection_name = "deals"

    def get_deal(self, deal_id: str) -> Optional[DealSummary]:
        document = self.mongo_service.find_one(self.collection_name, {"_id": deal_id})
        if document is None:
            logger.info(f"Deal not found: {deal_id}")
            return None
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return DealSummary.model_validate(data)
