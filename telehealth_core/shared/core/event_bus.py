"""
Event bus for the telehealth subscription core.
Lets the lifecycle services announce status changes without knowing who listens
(notifications, analytics, billing adapters).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar
from uuid import uuid4

logger = logging.getLogger(__name__)

T = TypeVar('T', bound='DomainEvent')


class EventPriority(Enum):
    """Event priority levels."""
    LOW = 1
    NORMAL = 2
    HIGH = 3
    CRITICAL = 4


@dataclass
class DomainEvent:
    """
    Base class for all domain events.
    Events represent something that already happened to an aggregate.
    """
    event_id: str
    event_type: str
    aggregate_id: str
    aggregate_type: str
    user_id: Optional[str]
    timestamp: datetime
    version: int = 1
    priority: EventPriority = EventPriority.NORMAL
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.event_id:
            self.event_id = str(uuid4())
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc)
        if not self.metadata:
            self.metadata = {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        data['priority'] = self.priority.value
        return data

    def add_metadata(self, key: str, value: Any):
        if self.metadata is None:
            self.metadata = {}
        self.metadata[key] = value

    def get_correlation_id(self) -> Optional[str]:
        if self.metadata:
            return self.metadata.get('correlation_id')
        return None

    def set_correlation_id(self, correlation_id: str):
        self.add_metadata('correlation_id', correlation_id)


class EventHandler(ABC, Generic[T]):
    """
    Abstract base class for event handlers.
    Each handler processes one type of domain event.
    """

    @property
    @abstractmethod
    def event_type(self) -> str:
        """Event type this handler processes."""
        pass

    @abstractmethod
    async def handle(self, event: T) -> bool:
        """
        Handle the domain event.

        Args:
            event: Domain event to handle

        Returns:
            bool: True if handled successfully
        """
        pass

    async def on_error(self, event: T, error: Exception):
        """Called once retries are exhausted."""
        logger.error(f"Error handling event {event.event_id}: {error}", exc_info=True)


@dataclass
class EventSubscription:
    """Event subscription configuration."""
    handler: EventHandler
    event_type: str
    priority: int = 1
    retry_count: int = 3
    timeout: Optional[int] = None


class EventStore:
    """
    In-memory append-only log of published events.
    """

    def __init__(self):
        self.events: List[DomainEvent] = []
        self._lock = asyncio.Lock()

    async def append(self, event: DomainEvent):
        async with self._lock:
            self.events.append(event)
            logger.debug(f"Event stored: {event.event_type} - {event.event_id}")

    async def get_events(
        self,
        aggregate_id: Optional[str] = None,
        event_type: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[DomainEvent]:
        """Retrieve events with optional filtering, oldest first."""
        async with self._lock:
            filtered_events = list(self.events)

            if aggregate_id:
                filtered_events = [e for e in filtered_events if e.aggregate_id == aggregate_id]
            if event_type:
                filtered_events = [e for e in filtered_events if e.event_type == event_type]
            if since:
                filtered_events = [e for e in filtered_events if e.timestamp >= since]

            # stable sort keeps publish order for identical timestamps
            filtered_events.sort(key=lambda e: e.timestamp)

            if limit:
                filtered_events = filtered_events[:limit]
            return filtered_events

    async def clear(self):
        async with self._lock:
            self.events.clear()
            logger.info("Event store cleared")


class EventBus:
    """
    Event bus for publishing and subscribing to domain events.
    Handlers run on background worker tasks with retry and backoff.
    """

    def __init__(self, event_store: Optional[EventStore] = None, worker_count: int = 3):
        self.subscriptions: Dict[str, List[EventSubscription]] = {}
        self.event_store = event_store or EventStore()
        self._processing_queue: asyncio.Queue = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self._worker_count = worker_count
        self._running = False
        self._stats = {
            "published": 0,
            "processed": 0,
            "failed": 0,
            "retries": 0
        }

    async def start(self):
        """Start event processing workers."""
        if self._running:
            return

        self._running = True
        for i in range(self._worker_count):
            worker = asyncio.create_task(self._event_worker(f"worker-{i}"))
            self._workers.append(worker)

        logger.info(f"Event bus started with {self._worker_count} workers")

    async def stop(self):
        """Stop event processing workers."""
        if not self._running:
            return

        self._running = False
        for worker in self._workers:
            worker.cancel()

        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

        logger.info("Event bus stopped")

    async def _event_worker(self, worker_name: str):
        logger.debug(f"Event worker {worker_name} started")

        while self._running:
            try:
                try:
                    event, correlation_id = await asyncio.wait_for(
                        self._processing_queue.get(),
                        timeout=1.0
                    )
                except asyncio.TimeoutError:
                    continue

                try:
                    await self._process_event(event, correlation_id)
                finally:
                    self._processing_queue.task_done()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Event worker {worker_name} error: {e}", exc_info=True)

        logger.debug(f"Event worker {worker_name} stopped")

    async def _process_event(self, event: DomainEvent, correlation_id: Optional[str]):
        """Run every handler subscribed to the event type, highest priority first."""
        handlers = self.subscriptions.get(event.event_type)
        if not handlers:
            logger.debug(f"No handlers for event type: {event.event_type}")
            return

        if correlation_id:
            event.set_correlation_id(correlation_id)

        for subscription in sorted(handlers, key=lambda s: s.priority, reverse=True):
            await self._execute_handler(event, subscription)

    async def _execute_handler(self, event: DomainEvent, subscription: EventSubscription):
        handler = subscription.handler

        for attempt in range(subscription.retry_count + 1):
            try:
                if subscription.timeout:
                    success = await asyncio.wait_for(handler.handle(event), timeout=subscription.timeout)
                else:
                    success = await handler.handle(event)

                if success:
                    self._stats["processed"] += 1
                    logger.debug(f"Event {event.event_id} handled by {handler.__class__.__name__}")
                    return
                error: Exception = RuntimeError("Handler returned False")

            except asyncio.TimeoutError:
                error = TimeoutError(
                    f"Handler {handler.__class__.__name__} timed out for event {event.event_id}"
                )
            except Exception as e:
                error = e

            logger.warning(
                f"Handler {handler.__class__.__name__} failed for event {event.event_id}: {error}"
            )
            if attempt < subscription.retry_count:
                self._stats["retries"] += 1
                await asyncio.sleep(2 ** attempt)  # Exponential backoff
                continue

            self._stats["failed"] += 1
            await handler.on_error(event, error)

    def subscribe(
        self,
        handler: EventHandler,
        event_type: Optional[str] = None,
        priority: int = 1,
        retry_count: int = 3,
        timeout: Optional[int] = None
    ):
        """
        Subscribe handler to event type.

        Args:
            handler: Event handler instance
            event_type: Event type to subscribe to (uses handler.event_type if None)
            priority: Handler priority (higher = executed first)
            retry_count: Number of retry attempts on failure
            timeout: Handler timeout in seconds
        """
        if event_type is None:
            event_type = handler.event_type

        self.subscriptions.setdefault(event_type, []).append(
            EventSubscription(
                handler=handler,
                event_type=event_type,
                priority=priority,
                retry_count=retry_count,
                timeout=timeout
            )
        )
        logger.info(f"Handler {handler.__class__.__name__} subscribed to {event_type}")

    async def publish(self, event: DomainEvent, correlation_id: Optional[str] = None):
        """
        Publish event to the bus.

        Args:
            event: Domain event to publish
            correlation_id: Optional correlation ID for tracing
        """
        await self.event_store.append(event)
        await self._processing_queue.put((event, correlation_id))
        self._stats["published"] += 1

        logger.info(f"Event published: {event.event_type} - {event.event_id}")

    async def publish_and_wait(
        self,
        event: DomainEvent,
        correlation_id: Optional[str] = None,
        timeout: Optional[int] = 30
    ):
        """Publish event and wait until the queue has drained."""
        await self.publish(event, correlation_id)

        try:
            await asyncio.wait_for(self._processing_queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout waiting for event {event.event_id} to be processed")

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "queue_size": self._processing_queue.qsize(),
            "worker_count": len(self._workers),
            "subscription_count": sum(len(subs) for subs in self.subscriptions.values()),
            "event_types": list(self.subscriptions.keys())
        }

    async def get_events(
        self,
        aggregate_id: Optional[str] = None,
        event_type: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[DomainEvent]:
        """Get events from event store."""
        return await self.event_store.get_events(aggregate_id, event_type, since, limit)


# Global event bus instance
_event_bus: Optional[EventBus] = None


async def get_event_bus() -> EventBus:
    """
    Get global event bus instance, starting it on first use.

    Returns:
        EventBus: Event bus instance
    """
    global _event_bus
    if _event_bus is None:
        from telehealth_core.shared.config.settings import get_settings

        _event_bus = EventBus(worker_count=get_settings().EVENT_BUS_WORKERS)
        await _event_bus.start()
    return _event_bus


async def shutdown_event_bus():
    """Shutdown global event bus."""
    global _event_bus
    if _event_bus:
        await _event_bus.stop()
        _event_bus = None
        logger.info("Global event bus shutdown")
