import json
import logging
import re

from pydantic import ValidationError

from interview_room.conversation.llm import ConversationEngine, ConversationError
from interview_room.db.interview_repo import STATUS_COMPLETED, InterviewStore
from interview_room.db.supabase import StoreError
from interview_room.db.transcript_repo import TranscriptStore
from interview_room.prompts import FEEDBACK_PROMPT
from interview_room.schemas import FeedbackReport
from interview_room.system_metrics import increment_metric

logger = logging.getLogger("interview_room.services.feedback")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

DEFAULT_FEEDBACK = FeedbackReport(
    overallScore=0,
    summary="Feedback could not be generated for this interview.",
)


def format_transcript(messages: list[dict]) -> str:
    lines = []
    for m in messages:
        speaker = "Interviewer" if m.get("role") == "ai" else "Candidate"
        lines.append(f"{speaker}: {m.get('content', '')}")
    return "\n".join(lines)


def parse_report(text: str) -> FeedbackReport | None:
    match = _JSON_OBJECT.search(text or "")
    if not match:
        return None
    try:
        return FeedbackReport.model_validate(json.loads(match.group(0)))
    except (ValueError, ValidationError):
        return None


class FeedbackService:
    """Post-interview report: transcript -> LLM JSON report -> interview record."""

    def __init__(self, engine: ConversationEngine, transcripts: TranscriptStore, interviews: InterviewStore):
        self.engine = engine
        self.transcripts = transcripts
        self.interviews = interviews

    async def generate(self, interview_id: str) -> FeedbackReport:
        try:
            messages = await self.transcripts.list(interview_id)
        except StoreError as exc:
            logger.error("feedback transcript load failed | interview_id=%s err=%s", interview_id, exc)
            return DEFAULT_FEEDBACK
        if not messages:
            logger.info("feedback skipped, empty transcript | interview_id=%s", interview_id)
            return DEFAULT_FEEDBACK

        prompt = [
            {"role": "system", "content": FEEDBACK_PROMPT},
            {"role": "user", "content": format_transcript(messages)},
        ]
        try:
            reply = await self.engine.complete(prompt)
        except ConversationError as exc:
            logger.error("feedback generation failed | interview_id=%s err=%s", interview_id, exc)
            return DEFAULT_FEEDBACK

        report = parse_report(reply)
        if report is None:
            logger.warning("feedback reply was not valid JSON | interview_id=%s", interview_id)
            return DEFAULT_FEEDBACK

        try:
            await self.interviews.update(interview_id, {
                "score": report.overallScore,
                "feedback": report.model_dump(),
                "status": STATUS_COMPLETED,
            })
        except StoreError as exc:
            logger.error("feedback save failed | interview_id=%s err=%s", interview_id, exc)
            return report

        increment_metric("feedback_generated_total")
        logger.info("feedback saved | interview_id=%s score=%s", interview_id, report.overallScore)
        return report
