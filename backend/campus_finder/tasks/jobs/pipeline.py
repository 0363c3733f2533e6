"""Periodic Celery tasks driving the embedding and matching schedulers.

Run a worker plus beat, e.g. ``celery -A campus_finder.tasks.celery_app worker -B``.
"""

from __future__ import annotations

import threading
from dataclasses import asdict

from flask import Flask

from campus_finder.pipeline.runtime import get_embedding_scheduler, get_match_scheduler
from campus_finder.tasks.celery_app import celery_app

_app: Flask | None = None
_app_lock = threading.Lock()


def flask_app() -> Flask:
    """Flask app for database access from the worker, created once per process."""
    global _app
    with _app_lock:
        if _app is None:
            from campus_finder import create_app

            _app = create_app()
        return _app


@celery_app.task(name="pipeline.embed_tick")
def embed_tick() -> dict:
    with flask_app().app_context():
        return asdict(get_embedding_scheduler().tick())


@celery_app.task(name="pipeline.match_tick")
def match_tick() -> dict:
    with flask_app().app_context():
        return {"created": get_match_scheduler().tick()}
