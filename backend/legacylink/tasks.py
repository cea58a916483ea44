import os
from celery import Celery
from celery.utils.log import get_task_logger

from .services.release_sweep import run_sweep_once

_logger = get_task_logger(__name__)

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
celery_app = Celery("tasks", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

RELEASE_SWEEP_INTERVAL_MINUTES = int(os.getenv("RELEASE_SWEEP_INTERVAL_MINUTES", "60"))

celery_app.conf.beat_schedule = {
    "release-sweep": {
        "task": "legacylink.tasks.run_release_sweep",
        "schedule": RELEASE_SWEEP_INTERVAL_MINUTES * 60.0,
    },
}


@celery_app.task(name="legacylink.tasks.run_release_sweep")
def run_release_sweep() -> dict:
    report = run_sweep_once()
    if report.errors:
        _logger.warning("Release sweep finished with %s owner failures", len(report.errors))
    return report.model_dump(mode="json")


def enqueue_release_sweep():
    if celery_app.conf.task_always_eager:
        return run_release_sweep()
    return run_release_sweep.delay()
