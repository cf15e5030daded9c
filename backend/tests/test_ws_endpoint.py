import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from fakes import FakeInterviewStore, FakeProvider, FakeSttConnector
from interview_room.api import ws_interview
from interview_room.main import app
from interview_room.session.dependencies import SessionTimings

INTERVIEW_ID = "0b7e4a52-6c1d-4f0a-9a3e-5d2c8b1f7e90"
WS_PATH = f"/api/v1/interviews/ws?interviewId={INTERVIEW_ID}"


class ScriptedStt(FakeSttConnector):
    """Emits one fragment on the first frame and END_SPEECH on the third."""

    async def send_audio(self, pcm: bytes) -> None:
        await super().send_audio(pcm)
        if len(self.audio) == 1:
            await self.fragment("I would shard by user id")
        elif len(self.audio) == 3:
            await self.vad("END_SPEECH")


class ScriptedProvider(FakeProvider):
    def create_stt_connector(self, **callbacks):
        connector = ScriptedStt(**callbacks)
        self.stt_connectors.append(connector)
        return connector


@pytest.fixture
def provider(monkeypatch: pytest.MonkeyPatch) -> ScriptedProvider:
    fake = ScriptedProvider(
        interviews=FakeInterviewStore({INTERVIEW_ID: {"id": INTERVIEW_ID, "user_id": "user-1", "type": "system-design"}}),
        timings=SessionTimings(
            auth_timeout_sec=0.3,
            speech_debounce_sec=0.05,
            heartbeat_interval_sec=30.0,
            max_text_bytes=4096,
        ),
    )
    monkeypatch.setattr(ws_interview, "dependency_provider", fake)
    return fake


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def _expect_close(ws) -> int:
    while True:
        try:
            ws.receive_json()
        except WebSocketDisconnect as exc:
            return exc.code


def test_health_and_metrics(client):
    assert client.get("/health").json() == {"status": "ok"}
    metrics = client.get("/metrics").json()
    assert "ws_connections_active" in metrics
    assert "llm_turns_total" in metrics


def test_invalid_interview_id_closes_4000(client, provider):
    with client.websocket_connect("/api/v1/interviews/ws?interviewId=not-a-uuid") as ws:
        assert ws.receive_json() == {"type": "error", "message": "Invalid interview ID format"}
        assert _expect_close(ws) == 4000


def test_first_message_must_be_auth(client, provider):
    with client.websocket_connect(WS_PATH) as ws:
        ws.send_json({"type": "hello"})
        assert ws.receive_json() == {"type": "error", "message": 'First message must be { type: "auth", token: "..." }'}
        assert _expect_close(ws) == 4001


def test_empty_token_is_rejected(client, provider):
    with client.websocket_connect(WS_PATH) as ws:
        ws.send_json({"type": "auth", "token": ""})
        assert ws.receive_json()["type"] == "error"
        assert _expect_close(ws) == 4001


def test_expired_token_closes_4001(client, provider, make_token):
    with client.websocket_connect(WS_PATH) as ws:
        ws.send_json({"type": "auth", "token": make_token(expires_in=-30)})
        assert ws.receive_json() == {"type": "error", "message": "Token expired"}
        assert _expect_close(ws) == 4001


def test_auth_timeout_closes_4008(client, provider):
    with client.websocket_connect(WS_PATH) as ws:
        assert ws.receive_json()["type"] == "error"
        assert _expect_close(ws) == 4008


def test_full_turn_over_the_socket(client, provider, make_token):
    with client.websocket_connect(WS_PATH) as ws:
        ws.send_json({"type": "auth", "token": make_token("user-1")})
        assert ws.receive_json() == {"type": "auth_success"}
        assert ws.receive_json() == {"transcript": "reply 1", "isFinal": True, "speaker": "ai"}
        assert "audio" in ws.receive_json()

        for _ in range(3):
            ws.send_bytes(b"\x00\x01" * 160)

        assert ws.receive_json() == {"transcript": "I would shard by user id", "isFinal": False, "speaker": "user"}
        assert ws.receive_json() == {"transcript": "I would shard by user id", "isFinal": True, "speaker": "user"}
        assert ws.receive_json() == {"type": "ai_thinking"}
        assert ws.receive_json() == {"transcript": "reply 2", "isFinal": True, "speaker": "ai"}
        tail = [ws.receive_json(), ws.receive_json()]
        assert {"type": "ai_done"} in tail
        assert any("audio" in m for m in tail)

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}

        ws.send_text("x" * 5000)
        assert _expect_close(ws) == 1000

    assert provider.engine.calls[1][-1] == {"role": "user", "content": "I would shard by user id"}
