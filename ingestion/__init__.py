"""뉴스 수집/중복 제거/분석 파이프라인 패키지."""

from .celery_app import CLEANUP_TASK, COLLECT_TASK, create_celery_app, get_celery_app  # noqa: F401
from .settings import CollectionSchedule, Settings, get_settings, reset_settings_cache  # noqa: F401

__all__ = [
    "CLEANUP_TASK",
    "COLLECT_TASK",
    "CollectionSchedule",
    "Settings",
    "create_celery_app",
    "get_celery_app",
    "get_settings",
    "reset_settings_cache",
]
