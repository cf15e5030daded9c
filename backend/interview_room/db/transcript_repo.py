import logging
from datetime import datetime, timezone

from interview_room.db.supabase import SupabaseRest

logger = logging.getLogger("interview_room.db.transcript_repo")

TRANSCRIPT_TABLE = "transcript_messages"
TRANSCRIPT_ROLES = {"user", "ai"}


class TranscriptStore:
    """
    Append-only transcript log keyed by interview.
    Safe no-op if Supabase is not configured.
    """

    def __init__(self, client: SupabaseRest | None = None):
        self.client = client or SupabaseRest()

    async def append(self, interview_id: str, role: str, content: str) -> dict | None:
        if role not in TRANSCRIPT_ROLES:
            raise ValueError(f"unknown transcript role: {role}")
        if not self.client.configured:
            logger.debug("append skipped (store not configured) | interview_id=%s", interview_id)
            return None
        return await self.client.insert(
            TRANSCRIPT_TABLE,
            {
                "interview_id": interview_id,
                "role": role,
                "content": content,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def list(self, interview_id: str) -> list[dict]:
        if not self.client.configured:
            return []
        return await self.client.select(
            TRANSCRIPT_TABLE,
            {"interview_id": interview_id},
            order="timestamp.asc",
        )
