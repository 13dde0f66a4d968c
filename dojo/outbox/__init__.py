"""
Outbox reliability engine.

Collaborators enqueue the intent to perform an external side effect (file a
GitHub issue, send an email); a background worker executes it with bounded,
backed-off retries and records the external id on success. The blueprint in
this package is the operator surface for inspecting, retrying and abandoning
entries.
"""
from dataclasses import dataclass
from typing import Optional

from flask import Blueprint, current_app

from dojo.outbox.executors import ExecutorRegistry, build_registry
from dojo.outbox.processor import OutboxProcessor
from dojo.outbox.scheduler import OutboxScheduler
from dojo.outbox.store import OutboxStore, SQLAlchemyOutboxStore

outbox_bp = Blueprint("outbox", __name__)


@dataclass
class Outbox:
    store: OutboxStore
    registry: ExecutorRegistry
    processor: OutboxProcessor
    scheduler: Optional[OutboxScheduler] = None


def init_outbox(app, store=None, registry=None) -> Outbox:
    """Wire store, executors and processor from app config and attach them to the app."""
    store = store or SQLAlchemyOutboxStore()
    registry = registry or build_registry(app.config)
    processor = OutboxProcessor.from_config(store, registry, app.config)
    outbox = Outbox(store=store, registry=registry, processor=processor)
    app.extensions["outbox"] = outbox
    return outbox


def get_outbox(app=None) -> Outbox:
    app = app or current_app
    return app.extensions["outbox"]


from dojo.outbox import routes  # noqa: E402,F401
