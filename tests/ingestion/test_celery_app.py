import pytest

celery = pytest.importorskip("celery")  # noqa: F841

from ingestion.celery_app import CLEANUP_TASK, COLLECT_TASK, create_celery_app
from ingestion.settings import CollectionSchedule, Settings


def _make_settings() -> Settings:
    return Settings(
        _env_file=None,
        redis_url="redis://localhost:6379/0",
        newsdata_api_key="secret",
        collection_schedules=[
            CollectionSchedule(country="us", category="technology", interval_minutes=5, enabled=True),
            CollectionSchedule(country="gb", category=None, interval_minutes=10, enabled=False),
        ],
        cleanup_interval_minutes=20,
        structlog_level="DEBUG",
        celery_worker_concurrency=2,
    )


def test_create_celery_app_builds_enabled_schedule():
    settings = _make_settings()

    app = create_celery_app(settings)

    schedule = app.conf.beat_schedule
    collect_entries = {k: v for k, v in schedule.items() if v["task"] == COLLECT_TASK}
    assert list(collect_entries) == ["collect.us.technology.0"]
    assert collect_entries["collect.us.technology.0"]["args"] == ("us", "technology")
    assert all(".gb." not in key for key in schedule)
    assert app.conf.worker_concurrency == 2


def test_cleanup_job_always_scheduled():
    app = create_celery_app(_make_settings())

    cleanup = app.conf.beat_schedule["cleanup.expired"]
    assert cleanup["task"] == CLEANUP_TASK
    assert cleanup["schedule"].run_every.total_seconds() == 20 * 60
