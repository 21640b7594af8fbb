# crmhub/modules/reconciliation/repository.py

from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING

from crmhub.core.repository import BaseRepository, utcnow
from .models import CallValidationInDB, ReceptiveAttendanceInDB, ReconciliationConfigInDB


class ReceptiveAttendanceRepository(BaseRepository[ReceptiveAttendanceInDB]):
    model = ReceptiveAttendanceInDB
    collection_name = "receptive_attendances"

    async def create_indexes(self):
        await self.collection.create_index([("organization_id", ASCENDING), ("created_at", ASCENDING)])

    async def list_between(self, start: datetime, end: datetime) -> List[ReceptiveAttendanceInDB]:
        return await self.list_by(
            {"created_at": {"$gte": start, "$lte": end}}, limit=0, sort=[("created_at", ASCENDING)]
        )


class ReconciliationConfigRepository(BaseRepository[ReconciliationConfigInDB]):
    model = ReconciliationConfigInDB
    collection_name = "reconciliation_configs"

    async def upsert(self, data: Dict[str, Any]) -> Optional[ReconciliationConfigInDB]:
        now = utcnow()
        try:
            await self.collection.update_one(
                self._scoped(),
                {"$set": dict(data, updated_at=now), "$setOnInsert": {"created_at": now}},
                upsert=True,
            )
        except Exception as e:
            self._handle_db_exception(e, "upsert")
        return await self.get_by({})


class CallValidationRepository(BaseRepository[CallValidationInDB]):
    model = CallValidationInDB
    collection_name = "call_validations"

    async def recent(self, limit: int = 20) -> List[CallValidationInDB]:
        return await self.list_by({}, limit=limit, sort=[("created_at", DESCENDING)])
