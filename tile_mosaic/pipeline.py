"""Bounded-queue plumbing shared by the indexing and generation pipelines.

Stages run on a :class:`~concurrent.futures.ThreadPoolExecutor` and talk
through bounded :class:`queue.Queue` objects. A stream is closed by sending
:data:`DONE` once per consumer; the fan-in consumer counts one :data:`DONE`
per producing worker.

Two events steer shutdown. ``stop`` asks every stage to wind down (a stage
failed or the caller stopped reading); ``closed`` means nobody reads the
merged stream any more, so workers must not block on it.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterator
from typing import Any

DONE = object()

# Seconds a blocked send waits before re-checking its stop events.
POLL_INTERVAL = 0.05


def send(q: queue.Queue, item: Any, *stop: threading.Event | None) -> bool:
    """Put *item* on *q*, giving up once any event in *stop* is set.

    Returns:
        True if the item was enqueued, False if a stop event fired first.
    """
    events = [e for e in stop if e is not None]
    while not any(e.is_set() for e in events):
        try:
            q.put(item, timeout=POLL_INTERVAL)
            return True
        except queue.Full:
            continue
    return False


def close(q: queue.Queue, consumers: int, stop: threading.Event) -> None:
    """Send one :data:`DONE` per consumer unless the pipeline is stopping."""
    for _ in range(consumers):
        if not send(q, DONE, stop):
            return


def receive(q: queue.Queue, stop: threading.Event) -> Iterator[Any]:
    """Yield items from *q* until a :data:`DONE` arrives.

    While the queue is empty the wait re-checks *stop*, so a consumer whose
    producer gave up is never stranded.
    """
    while True:
        try:
            item = q.get(timeout=POLL_INTERVAL)
        except queue.Empty:
            if stop.is_set():
                return
            continue
        if item is DONE:
            return
        yield item


def merge(q: queue.Queue, producers: int) -> Iterator[Any]:
    """Fan in: yield items from *q* until every producer has sent :data:`DONE`."""
    remaining = producers
    while remaining:
        item = q.get()
        if item is DONE:
            remaining -= 1
            continue
        yield item
