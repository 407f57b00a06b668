"""Caller-supplied sinks that sources stream results into."""

import logging
import threading
from typing import Callable

from .sdp import Item, QueryError

logger = logging.getLogger(__name__)


class QueryResultStream:
    """Forwards items and errors to callbacks until closed."""

    def __init__(
        self,
        item_fn: Callable[[Item], None],
        err_fn: Callable[[QueryError], None],
    ):
        self._item_fn = item_fn
        self._err_fn = err_fn
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send_item(self, item: Item):
        with self._lock:
            if self._closed:
                logger.debug(f"Dropping item {item.type} sent after stream close")
                return
            self._item_fn(item)

    def send_error(self, err: QueryError):
        with self._lock:
            if self._closed:
                logger.debug(f"Dropping error sent after stream close: {err}")
                return
            self._err_fn(err)

    def close(self):
        with self._lock:
            self._closed = True
