from interview_room.conversation.history import KEEP_PREFIX, MAX_CONVERSATION_HISTORY, ConversationHistory
from interview_room.prompts import BEHAVIORAL, GREETING_OPENER, get_system_prompt


def test_history_starts_with_category_system_prompt():
    history = ConversationHistory.for_category(BEHAVIORAL)

    assert len(history) == 1
    assert history.messages[0] == {"role": "system", "content": get_system_prompt(BEHAVIORAL)}


def test_with_user_turn_does_not_mutate_history():
    history = ConversationHistory(system_prompt="sys")

    messages = history.with_user_turn("hi there")

    assert messages[-1] == {"role": "user", "content": "hi there"}
    assert len(history) == 1


def test_history_cap_keeps_prefix_and_recent_messages():
    history = ConversationHistory(system_prompt="sys")
    history.commit_turn(GREETING_OPENER, "welcome")
    prefix = history.snapshot()

    for i in range(40):
        history.commit_turn(f"answer {i}", f"question {i}")
        assert len(history) <= KEEP_PREFIX + MAX_CONVERSATION_HISTORY

    assert len(history) == KEEP_PREFIX + MAX_CONVERSATION_HISTORY
    assert history.messages[:KEEP_PREFIX] == prefix
    assert history.messages[-1] == {"role": "assistant", "content": "question 39"}
    assert history.messages[-2] == {"role": "user", "content": "answer 39"}


def test_history_below_cap_is_untouched():
    history = ConversationHistory(system_prompt="sys")
    for i in range(5):
        history.commit_turn(f"u{i}", f"a{i}")

    assert len(history) == 11
    assert [m["content"] for m in history.messages[1:3]] == ["u0", "a0"]
