# crmhub/modules/integrations/repository.py

from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING

from crmhub.core.repository import BaseRepository
from .models import IntegrationInDB, IntegrationLogInDB


class IntegrationRepository(BaseRepository[IntegrationInDB]):
    model = IntegrationInDB
    collection_name = "integrations"

    async def create_indexes(self):
        await self.collection.create_index("auth_token", unique=True)

    async def get_by_token(self, auth_token: str) -> Optional[IntegrationInDB]:
        """Busca global pelo token; o webhook não tem tenant antes disso."""
        if not auth_token:
            return None
        return await self.get_by({"auth_token": auth_token})

    async def replace_mappings(self, integration_id: str, mappings: List[Dict[str, Any]]) -> Optional[IntegrationInDB]:
        return await self.update(integration_id, {"field_mappings": mappings})


class IntegrationLogRepository(BaseRepository[IntegrationLogInDB]):
    model = IntegrationLogInDB
    collection_name = "integration_logs"

    async def create_indexes(self):
        await self.collection.create_index([("organization_id", ASCENDING), ("integration_id", ASCENDING), ("created_at", DESCENDING)])

    async def list_for_integration(self, integration_id: str, skip: int = 0, limit: int = 50) -> List[IntegrationLogInDB]:
        return await self.list_by({"integration_id": integration_id}, skip=skip, limit=limit, sort=[("created_at", DESCENDING)])
