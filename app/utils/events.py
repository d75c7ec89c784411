from typing import Dict, List, Callable, Any, Optional, Set
import asyncio
from concurrent.futures import ThreadPoolExecutor
import logging

logger = logging.getLogger(__name__)

class EventBus:
    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}
        self._executor = ThreadPoolExecutor(max_workers=4)
        self._pending: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop]):
        """Loop that serves requests; emits from worker threads are handed to it."""
        self._loop = loop

    def subscribe(self, event_type: str, handler: Callable):
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Callable):
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def has_subscribers(self, event_type: str) -> bool:
        return bool(self._handlers.get(event_type))

    def clear(self):
        self._handlers.clear()

    async def publish(self, event_type: str, data: Dict[str, Any]) -> int:
        """Run every handler for the event and return how many of them failed."""
        handlers = list(self._handlers.get(event_type, []))
        if not handlers:
            return 0

        loop = asyncio.get_running_loop()
        tasks = []
        for handler in handlers:
            if asyncio.iscoroutinefunction(handler):
                tasks.append(asyncio.create_task(handler(data)))
            else:
                task = loop.run_in_executor(
                    self._executor, self._run_sync_handler, handler, data
                )
                tasks.append(task)

        failures = 0
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                failures += 1
                logger.error(f"Error in event handler {handler.__name__} for {event_type}: {result}")
        return failures

    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        """Fire-and-forget publish; handler failures are logged and never reach the caller."""
        if not self.has_subscribers(event_type):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            if self._loop is not None and self._loop.is_running():
                asyncio.run_coroutine_threadsafe(self.publish(event_type, data), self._loop)
                return
            asyncio.run(self.publish(event_type, data))
            return

        task = loop.create_task(self.publish(event_type, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _run_sync_handler(self, handler: Callable, data: Dict[str, Any]):
        try:
            handler(data)
        except Exception as e:
            logger.error(f"Error in sync event handler {handler.__name__}: {e}")
            raise

event_bus = EventBus()
