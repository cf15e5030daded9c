from __future__ import annotations

from dataclasses import dataclass, field

from interview_room.prompts import get_system_prompt

MAX_CONVERSATION_HISTORY = 20
# system prompt + greeting opener + greeting reply
KEEP_PREFIX = 3


@dataclass
class ConversationHistory:
    """
    Role-tagged chat history. Entry 0 is the system prompt; once the list grows
    past KEEP_PREFIX + max_recent, middle entries are dropped and the prefix stays.
    """

    system_prompt: str
    max_recent: int = MAX_CONVERSATION_HISTORY
    messages: list[dict] = field(default_factory=list)

    def __post_init__(self):
        if not self.messages:
            self.messages = [{"role": "system", "content": self.system_prompt}]

    @classmethod
    def for_category(cls, category: str | None, max_recent: int = MAX_CONVERSATION_HISTORY) -> "ConversationHistory":
        return cls(system_prompt=get_system_prompt(category), max_recent=max_recent)

    def __len__(self) -> int:
        return len(self.messages)

    def snapshot(self) -> list[dict]:
        return [dict(m) for m in self.messages]

    def with_user_turn(self, text: str) -> list[dict]:
        """Messages to send for a pending user turn, without mutating history."""
        return self.snapshot() + [{"role": "user", "content": text}]

    def append(self, role: str, content: str) -> None:
        self.messages.append({"role": role, "content": content})
        self.trim()

    def commit_turn(self, user_text: str, assistant_text: str) -> None:
        self.append("user", user_text)
        self.append("assistant", assistant_text)

    def trim(self) -> None:
        if len(self.messages) > KEEP_PREFIX + self.max_recent:
            self.messages = self.messages[:KEEP_PREFIX] + self.messages[-self.max_recent:]
