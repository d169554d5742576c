import logging
from typing import Dict, List, Callable, Any
import asyncio
import inspect

logger = logging.getLogger(__name__)

# ==================== Event Types ====================

APPLICATIONS_REFRESHED = "applications.refreshed"
APPLICATION_CREATED = "application.created"
APPLICATION_VERIFIED = "application.verified"
NOTIFICATION = "notification"


class EventManager:
    """
    In-process event bus.
    The lifecycle controller emits here; subscribers (real-time relay,
    presentation adapters) react without the controller knowing about them.
    """
    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, handler: Callable):
        """Register a handler for a specific event type."""
        self._subscribers.setdefault(event_type, []).append(handler)
        logger.debug(f"🔌 {getattr(handler, '__name__', handler)} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: Callable):
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._subscribers.pop(event_type, None)

    async def emit(self, event_type: str, payload: Any):
        """Dispatch event to all subscribers. Handler failures are logged, never raised."""
        handlers = list(self._subscribers.get(event_type, []))
        if not handlers:
            logger.debug(f"Event {event_type} emitted but no subscribers found.")
            return

        logger.debug(f"📢 Emitting event: {event_type}")

        tasks = []
        for handler in handlers:
            if inspect.iscoroutinefunction(handler):
                tasks.append(handler(payload))
            else:
                # Sync handlers run in the default executor
                loop = asyncio.get_running_loop()
                tasks.append(loop.run_in_executor(None, handler, payload))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(f"❌ Handler {getattr(handler, '__name__', handler)} failed on {event_type}: {result}")


# Global Instance
event_bus = EventManager()
