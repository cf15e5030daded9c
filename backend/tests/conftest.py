import sys
import time
from pathlib import Path

import pytest
from jose import jwt


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fakes import TEST_JWT_SECRET  # noqa: E402


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("QA_MODE", "true")
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("SUPABASE_URL", "")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "")


@pytest.fixture
def jwt_secret() -> str:
    return TEST_JWT_SECRET


@pytest.fixture
def make_token():
    def _make(user_id: str = "user-1", expires_in: int = 3600, secret: str = TEST_JWT_SECRET, claim: str = "id") -> str:
        now = int(time.time())
        return jwt.encode({claim: user_id, "iat": now, "exp": now + expires_in}, secret, algorithm="HS256")

    return _make
