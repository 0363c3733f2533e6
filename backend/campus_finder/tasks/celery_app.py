from celery import Celery

from ..config import get_config
from ..logging_config import configure_logging


def make_celery() -> Celery:
    cfg = get_config(None)
    configure_logging(cfg.LOG_LEVEL)
    app = Celery("campus_finder", broker=cfg.CELERY_BROKER_URL, backend=cfg.CELERY_RESULT_BACKEND, include=[
        "campus_finder.tasks.jobs.pipeline",
    ])
    app.conf.update(
        task_track_started=True,
        worker_hijack_root_logger=False,
        beat_schedule={
            "embed-pending-items": {
                "task": "pipeline.embed_tick",
                "schedule": cfg.EMBED_TICK_SECONDS,
                # A tick that waited longer than one interval in the queue is stale
                "options": {"expires": cfg.EMBED_TICK_SECONDS},
            },
            "match-recent-items": {
                "task": "pipeline.match_tick",
                "schedule": cfg.MATCH_TICK_SECONDS,
                "options": {"expires": cfg.MATCH_TICK_SECONDS},
            },
        },
    )
    return app

celery_app = make_celery()
