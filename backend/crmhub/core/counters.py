# crmhub/core/counters.py

from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ReturnDocument
from loguru import logger

COUNTERS_COLLECTION = "counters"


class CounterService:
    """Sequências atômicas por organização (romaneio)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection: AsyncIOMotorCollection = db[COUNTERS_COLLECTION]

    async def _get_next_sequence(self, name: str) -> int:
        """Obtém o próximo valor da sequência de forma atômica."""
        log = logger.bind(counter_name=name)
        try:
            # upsert + $inc: a primeira chamada devolve 1
            counter = await self.collection.find_one_and_update(
                {"_id": name},
                {"$inc": {"sequence_value": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except Exception as e:
            log.exception(f"Database error while getting next sequence for counter '{name}': {e}")
            raise RuntimeError(f"Database error accessing counter '{name}'") from e

        if counter is None or "sequence_value" not in counter:
            log.critical(f"CRITICAL: find_one_and_update returned unexpected value: {counter}")
            raise RuntimeError(f"Failed to reliably get or create counter '{name}'")

        next_val = counter["sequence_value"]
        log.debug(f"Next sequence value obtained: {next_val}")
        return next_val

    async def next_romaneio_number(self, organization_id: str) -> int:
        """Número de romaneio sequencial da organização (1, 2, 3...)."""
        return await self._get_next_sequence(f"romaneio_{organization_id}")
