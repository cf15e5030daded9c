import logging
from datetime import datetime, timezone

from interview_room.db.supabase import SupabaseRest

logger = logging.getLogger("interview_room.db.interview_repo")

INTERVIEW_TABLE = "interviews"

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETED = "completed"

_UPDATABLE_FIELDS = {"status", "score", "feedback"}


class InterviewStore:
    def __init__(self, client: SupabaseRest | None = None):
        self.client = client or SupabaseRest()

    async def get(self, interview_id: str) -> dict | None:
        if not self.client.configured:
            return None
        rows = await self.client.select(INTERVIEW_TABLE, {"id": interview_id}, limit=1)
        return rows[0] if rows else None

    async def update(self, interview_id: str, fields: dict) -> dict | None:
        update_data = {k: v for k, v in (fields or {}).items() if k in _UPDATABLE_FIELDS}
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
        if not self.client.configured:
            logger.info("update skipped (store not configured) | interview_id=%s", interview_id)
            return None
        return await self.client.update(INTERVIEW_TABLE, {"id": interview_id}, update_data)
