"""
Live feed — in-process publish/subscribe for hierarchy and job records.

Stands in for the document feed the board listens to. Subscribers register
per collection with an optional Scope; a published record is delivered only
to subscribers whose scope covers it. Each delivery is a full record tagged
with its document id.

For a read-assigned-only scope, a job is delivered while the subscriber is
assigned to it, plus once more when it stops being visible, so the
subscriber can drop it.

A failing subscriber is logged and skipped; it never blocks delivery to the
others. Unsubscribing is idempotent.

Usage:
    from app.services.live_feed import feed

    unsubscribe = feed.subscribe("jobs", session.on_external_update, scope=scope)
    feed.publish("jobs", job.to_dict())
    unsubscribe()
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from app.services.scope_resolver import Scope

logger = logging.getLogger(__name__)

COLLECTIONS = ("jobs", "users", "offices", "departments")


@dataclass(frozen=True)
class _Subscription:
    token: int
    collection: str
    callback: Callable[[dict], None]
    scope: Optional[Scope]
    # ids delivered while visible; lets the update that hides a job through
    visible: set = field(default_factory=set)


def _record_in_scope(collection: str, record: dict, scope: Scope | None) -> bool:
    if scope is None:
        return True
    if collection == "offices":
        return scope.covers(record.get("org_id"), record.get("id"), None)
    if collection == "departments":
        return scope.covers(record.get("org_id"), record.get("office_id"), record.get("id"))
    if collection == "jobs":
        return scope.admits(record)
    return scope.covers(record.get("org_id"), record.get("office_id"), record.get("department_id"))


class LiveFeed:
    """Thread-safe subscriber registry with scope-filtered delivery."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: dict[int, _Subscription] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, collection: str, callback: Callable[[dict], None], *, scope: Scope | None = None,
                  visible_ids=()):
        """Register ``callback`` for ``collection``; returns an unsubscribe callable.

        ``visible_ids`` are records the subscriber already shows (e.g. a board's
        initial load), so the update that hides one of them is still delivered.
        """
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection!r}")
        with self._lock:
            token = next(self._tokens)
            self._subscriptions[token] = _Subscription(token, collection, callback, scope, set(visible_ids))

        def unsubscribe():
            with self._lock:
                self._subscriptions.pop(token, None)

        return unsubscribe

    def publish(self, collection: str, record: dict) -> int:
        """Deliver ``record`` to matching subscribers. Returns the delivery count."""
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.collection == collection]

        delivered = 0
        for sub in targets:
            if not self._admit(sub, record):
                continue
            try:
                sub.callback(record)
                delivered += 1
            except Exception:
                logger.exception(
                    "live_feed subscriber failed collection=%s id=%s token=%s",
                    collection, record.get("id"), sub.token,
                )
        return delivered

    def _admit(self, sub: _Subscription, record: dict) -> bool:
        record_id = record.get("id")
        in_scope = _record_in_scope(sub.collection, record, sub.scope)
        with self._lock:
            if in_scope:
                if sub.scope is not None and sub.scope.assigned_to is not None:
                    sub.visible.add(record_id)
                return True
            if record_id in sub.visible:
                sub.visible.discard(record_id)
                return True
        return False

    def subscriber_count(self, collection: str | None = None) -> int:
        with self._lock:
            if collection is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions.values() if s.collection == collection)

    def clear(self) -> None:
        with self._lock:
            self._subscriptions.clear()


feed = LiveFeed()
