"""Publish/subscribe channel for cross-component refresh notices.

Write functions publish a :class:`RefreshEvent` after a successful change so
that views holding their own copies of the data can refetch. The channel is
independent of the cache: invalidation already happened by the time an event
is published.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, DefaultDict, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)


class RefreshEvent(str, Enum):
    """Named refresh notices."""

    MEAL_SAVED = "mealSaved"
    INGREDIENT_SAVED = "ingredientSaved"
    DIETARY_TAG_SAVED = "dietaryTagSaved"
    USER_SAVED = "userSaved"
    ACTIVITY_LOGGED = "activityLogged"


Listener = Callable[[Mapping[str, Any]], Union[None, Awaitable[None]]]


class RefreshNotifier:
    """In-process event channel with sync or async listeners."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[RefreshEvent, List[Listener]] = defaultdict(list)

    def subscribe(
        self, event: RefreshEvent | str, listener: Listener
    ) -> Callable[[], None]:
        """Register ``listener`` for ``event``.

        Returns
        -------
        Callable[[], None]
            Function that removes the subscription. Calling it twice is safe.
        """
        key = RefreshEvent(event)
        self._listeners[key].append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners[key].remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def listener_count(self, event: RefreshEvent | str) -> int:
        return len(self._listeners.get(RefreshEvent(event), []))

    async def publish(
        self, event: RefreshEvent | str, payload: Optional[Mapping[str, Any]] = None
    ) -> int:
        """Deliver ``payload`` to every listener of ``event`` in order.

        A listener that raises is logged and skipped; the remaining
        listeners still run and the publisher never sees the error.

        Returns
        -------
        int
            Number of listeners that completed without raising.
        """
        key = RefreshEvent(event)
        data: Mapping[str, Any] = payload or {}
        delivered = 0
        for listener in list(self._listeners.get(key, [])):
            try:
                result = listener(data)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception(
                    "events.listener_failed",
                    extra={"event": key.value, "listener": repr(listener)},
                )
        logger.debug(
            "events.published", extra={"event": key.value, "delivered": delivered}
        )
        return delivered
