"""Celery 애플리케이션 부트스트랩."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict

from celery import Celery, signals
from celery.schedules import schedule as celery_schedule

from .settings import CollectionSchedule, Settings, get_settings
from .utils.logging import configure_logging, get_logger

_CELERY_APP: Celery | None = None

COLLECT_TASK = "ingestion.tasks.collect.collect_headlines"
CLEANUP_TASK = "ingestion.tasks.cleanup.cleanup_expired_articles"


def create_celery_app(settings: Settings | None = None) -> Celery:
    """설정을 기반으로 Celery 인스턴스를 생성한다."""
    config = settings or get_settings()
    configure_logging(config.structlog_level, json_enabled=config.log_json)

    app = Celery(
        "ingestion",
        broker=config.redis_url,
        backend=config.redis_url,
        include=["ingestion.tasks.collect", "ingestion.tasks.cleanup"],
    )
    app.conf.update(
        task_default_queue="ingestion.default",
        task_default_exchange="ingestion",
        task_default_routing_key="ingestion.default",
        task_soft_time_limit=config.celery_task_soft_time_limit,
        worker_concurrency=config.celery_worker_concurrency,
        beat_schedule=_build_beat_schedule(config),
        timezone="UTC",
        enable_utc=True,
        worker_send_task_events=True,
        task_send_sent_event=True,
    )
    _install_signal_handlers(app)
    return app


def get_celery_app() -> Celery:
    """싱글톤 Celery 인스턴스를 반환한다."""
    global _CELERY_APP
    if _CELERY_APP is None:
        _CELERY_APP = create_celery_app()
    return _CELERY_APP


def _build_beat_schedule(settings: Settings) -> Dict[str, Dict[str, Any]]:
    schedule: Dict[str, Dict[str, Any]] = {}
    for index, item in enumerate(settings.collection_schedules):
        if not item.enabled:
            continue
        schedule[_build_schedule_name(item, index)] = {
            "task": COLLECT_TASK,
            "schedule": celery_schedule(timedelta(minutes=item.interval_minutes)),
            "args": (item.country, item.category),
            "options": {"queue": "ingestion.collect"},
        }
    schedule["cleanup.expired"] = {
        "task": CLEANUP_TASK,
        "schedule": celery_schedule(timedelta(minutes=settings.cleanup_interval_minutes)),
        "args": (),
        "options": {"queue": "ingestion.default"},
    }
    return schedule


def _build_schedule_name(item: CollectionSchedule, index: int) -> str:
    return f"collect.{item.country}.{item.category or 'all'}.{index}"


def _install_signal_handlers(app: Celery) -> None:
    logger = get_logger("ingestion.worker")

    @signals.worker_shutdown.connect  # type: ignore[attr-defined]
    def _on_worker_shutdown(sender=None, **kwargs):  # noqa: ANN001
        logger.info("Celery worker shutdown detected", extra={"sender": str(sender)})
