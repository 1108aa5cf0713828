"""
Owner-scoped reads and deletes over persisted symptom records.
"""

from typing import Any, Dict, List, Optional

from shared.logging import get_logger
from shared.errors import InvalidInputError
from shared.kv_store import KeyValueStore


class LogAccess:
    """Every store access is keyed by the owner, so owners never see each other."""

    def __init__(self, store: KeyValueStore, table: str):
        self.store = store
        self.table = table
        self.logger = get_logger("symptoms.log_access")

    async def list(self, owner_id: str) -> List[Dict[str, Any]]:
        """All records for the owner, ordered by id. Empty is a valid result."""
        records = await self.store.query(self.table, owner_id)
        self.logger.debug("Listed symptom records", owner_id=owner_id, count=len(records))
        return records

    async def remove(self, owner_id: str, record_id: Optional[str]) -> Dict[str, str]:
        """Delete one record; deleting an unknown id succeeds."""
        if not record_id or not record_id.strip():
            raise InvalidInputError("Missing ID for deletion")

        await self.store.delete_item(self.table, owner_id, sort_key=record_id)
        self.logger.info("Deleted symptom record", owner_id=owner_id, id=record_id)
        return {"message": f"Deleted log {record_id}"}
