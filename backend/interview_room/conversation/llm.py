import asyncio
import logging
import time

from openai import AsyncOpenAI, OpenAIError

from core.config import LLM_BASE_URL, LLM_MAX_TOKENS, LLM_TIMEOUT_SEC, MODEL_NAME, OPENAI_API_KEY, QA_MODE
from interview_room.system_metrics import observe_llm_latency_ms

logger = logging.getLogger("interview_room.conversation.llm")

QA_MODE_REPLY = "Mock Response: I think you made a good point there. Can you walk me through your reasoning?"


class ConversationError(Exception):
    """Any failure producing the next assistant message."""


def build_client() -> AsyncOpenAI | None:
    if not OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set - conversation engine has no backend")
        return None
    return AsyncOpenAI(api_key=OPENAI_API_KEY, base_url=LLM_BASE_URL)


class ConversationEngine:
    """
    Stateless chat call: given the ordered history, return the next assistant message.
    All provider failures surface as ConversationError.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str = MODEL_NAME,
        timeout_sec: float = LLM_TIMEOUT_SEC,
        temperature: float = 0.7,
        max_tokens: int = LLM_MAX_TOKENS,
        qa_mode: bool = QA_MODE,
    ):
        self.client = client
        self.model = model
        self.timeout_sec = max(0.1, float(timeout_sec))
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.qa_mode = qa_mode

    async def complete(self, messages: list[dict]) -> str:
        if self.client is None:
            if self.qa_mode:
                return QA_MODE_REPLY
            raise ConversationError("Conversation backend is not configured")

        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": m["role"], "content": m["content"]} for m in messages],
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("chat completion timeout | timeout_sec=%s", self.timeout_sec)
            raise ConversationError("Conversation backend timed out") from exc
        except OpenAIError as exc:
            logger.warning("chat completion failed | err=%s", exc)
            raise ConversationError("Conversation backend error") from exc
        finally:
            observe_llm_latency_ms((time.perf_counter() - started) * 1000.0)

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise ConversationError("Malformed conversation response") from exc

        text = str(content or "").strip()
        if not text:
            raise ConversationError("Empty conversation response")
        return text
