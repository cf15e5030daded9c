import os
from pathlib import Path
from dotenv import load_dotenv

_BACKEND_ROOT = Path(__file__).resolve().parents[1]
_BACKEND_ENV_PATH = _BACKEND_ROOT / ".env"
load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)


def _flag(name: str, default: str = "false") -> bool:
    return str(os.getenv(name, default)).strip().lower() in {"1", "true", "yes", "on"}


JWT_SECRET = str(os.getenv("JWT_SECRET") or "").strip()

SUPABASE_URL = str(os.getenv("SUPABASE_URL") or "").strip()
SUPABASE_SERVICE_KEY = str(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY") or "").strip()
SUPABASE_TIMEOUT_SEC = max(1.0, float(os.getenv("SUPABASE_TIMEOUT_SEC", "8")))

# Chat backend speaks the OpenAI chat-completions protocol; point LLM_BASE_URL elsewhere for compatible providers.
OPENAI_API_KEY = str(os.getenv("OPENAI_API_KEY") or "").strip()
LLM_BASE_URL = str(os.getenv("LLM_BASE_URL") or "").strip() or None
MODEL_NAME = str(os.getenv("MODEL_NAME") or "gpt-4.1-mini").strip()
LLM_TIMEOUT_SEC = max(2.0, float(os.getenv("LLM_TIMEOUT_SEC", "30")))
LLM_MAX_TOKENS = max(64, int(os.getenv("LLM_MAX_TOKENS", "500")))

SARVAM_API_KEY = str(os.getenv("SARVAM_API_KEY") or "").strip()
SARVAM_STT_URL = str(
    os.getenv("SARVAM_STT_URL")
    or "wss://api.sarvam.ai/speech-to-text/ws?language-code=en-IN&model=saarika:v2.5"
    "&sample_rate=16000&input_audio_codec=pcm_s16le&vad_signals=true"
).strip()

ELEVENLABS_API_KEY = str(os.getenv("ELEVENLABS_API_KEY") or "").strip()
ELEVENLABS_VOICE_ID = str(os.getenv("ELEVENLABS_VOICE_ID") or "EXAVITQu4vr4xnSDxMaL").strip()
ELEVENLABS_MODEL_ID = str(os.getenv("ELEVENLABS_MODEL_ID") or "eleven_turbo_v2_5").strip()

WS_AUTH_TIMEOUT_SEC = max(1.0, float(os.getenv("WS_AUTH_TIMEOUT_SEC", "10")))
WS_SPEECH_DEBOUNCE_SEC = max(0.5, float(os.getenv("WS_SPEECH_DEBOUNCE_SEC", "2.0")))
WS_HEARTBEAT_INTERVAL_SEC = max(5.0, float(os.getenv("WS_HEARTBEAT_INTERVAL_SEC", "30")))
WS_MAX_TEXT_BYTES = max(1024, int(os.getenv("WS_MAX_TEXT_BYTES", "65536")))

QA_MODE = _flag("QA_MODE")
