from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os

from interview_room.api.ws_interview import router as interview_ws_router
from interview_room.system_metrics import get_metrics_snapshot
from core.config import QA_MODE, WS_HEARTBEAT_INTERVAL_SEC

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=logging.INFO,
)

app = FastAPI(title="Interview Room")
logger = logging.getLogger("interview_room.main")


def _get_allowed_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    return [item.strip() for item in raw.split(",") if item.strip()]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_allowed_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    return get_metrics_snapshot(extra={"qa_mode": QA_MODE})


app.include_router(interview_ws_router)
logger.info("Interview room ready | qa_mode=%s", QA_MODE)


def run() -> None:
    import uvicorn

    uvicorn.run(
        "interview_room.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        # protocol-level ping/pong; a peer that stops answering is disconnected by the server
        ws_ping_interval=WS_HEARTBEAT_INTERVAL_SEC,
        ws_ping_timeout=WS_HEARTBEAT_INTERVAL_SEC,
    )
