from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# 프로젝트 루트의 .env 파일 명시적 로딩
project_root = Path(__file__).parent.parent
env_path = project_root / ".env"
if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ingestion.settings import get_settings
from ingestion.utils.logging import configure_logging, get_logger

from .dependencies import get_pipeline
from .routes import router

_settings = get_settings()
configure_logging(_settings.structlog_level, json_enabled=_settings.log_json)
logger = get_logger(__name__)
logger.info("api.env", extra={"env_file": str(env_path), "env_file_found": env_path.exists()})


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # let in-flight enrichment finish and close HTTP clients
    if get_pipeline.cache_info().currsize:
        await get_pipeline().aclose()


app = FastAPI(title="News Lens API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

app.include_router(router)


@app.get("/healthz", tags=["system"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
