"""Event publisher for RabbitMQ topic exchange."""

import asyncio
import logging
from typing import Optional, Set

import aio_pika
from aio_pika import ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange

from common.config import settings
from common.observer import EventCollector
from common.schemas import PipelineEvent

logger = logging.getLogger(__name__)


class EventPublisher:
    """Publishes pipeline events to a RabbitMQ topic exchange."""

    def __init__(self, exchange_name: Optional[str] = None):
        self.connection: Optional[AbstractConnection] = None
        self.channel: Optional[AbstractChannel] = None
        self.exchange: Optional[AbstractExchange] = None
        self.exchange_name = exchange_name or settings.events_exchange_name

    @property
    def is_connected(self) -> bool:
        return (
            self.connection is not None
            and not self.connection.is_closed
            and self.exchange is not None
        )

    async def _on_reconnect(self, connection: AbstractConnection) -> None:
        """Callback when connection is re-established."""
        logger.info("🔄 Event publisher reconnected to RabbitMQ")
        try:
            self.channel = await connection.channel()
            self.exchange = await self.channel.declare_exchange(
                self.exchange_name, ExchangeType.TOPIC, durable=True
            )
        except Exception as e:
            logger.error(f"Failed to re-declare exchange after reconnection: {e}")

    async def connect(
        self, max_retries: Optional[int] = None, retry_delay: Optional[float] = None
    ) -> bool:
        """
        Connect to RabbitMQ and declare the topic exchange.

        Falls back to mock mode (events are logged, not published) when every
        attempt fails, so the pipeline can run without a broker.

        Returns:
            True if connected, False if running in mock mode
        """
        if self.is_connected:
            logger.debug("Event publisher already connected, skipping")
            return True

        max_retries = max_retries or settings.rabbitmq_connect_max_retries
        retry_delay = (
            retry_delay
            if retry_delay is not None
            else settings.rabbitmq_connect_retry_delay
        )

        for attempt in range(max_retries):
            try:
                self.connection = await aio_pika.connect_robust(settings.rabbitmq_url)
                self.connection.reconnect_callbacks.add(self._on_reconnect)

                self.channel = await self.connection.channel()
                self.exchange = await self.channel.declare_exchange(
                    self.exchange_name, ExchangeType.TOPIC, durable=True
                )

                logger.info(
                    f"✅ Event publisher connected to RabbitMQ, exchange: {self.exchange_name}"
                )
                return True

            except Exception as e:
                if attempt < max_retries - 1:
                    logger.warning(
                        f"⚠️ Failed to connect to RabbitMQ for event publishing "
                        f"(attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {retry_delay}s..."
                    )
                    await asyncio.sleep(retry_delay)
                else:
                    logger.warning(
                        f"⚠️ Failed to connect to RabbitMQ after {max_retries} attempts: {e}"
                    )
                    logger.warning(
                        "Running in mock mode - events will be logged but not published"
                    )

        self.connection = None
        self.channel = None
        self.exchange = None
        return False

    async def disconnect(self) -> None:
        """Close connection to RabbitMQ."""
        if self.connection and not self.connection.is_closed:
            try:
                await self.connection.close()
            except Exception as e:
                logger.warning(f"Error closing RabbitMQ connection: {e}")
            finally:
                logger.info("Disconnected event publisher from RabbitMQ")
        self.connection = None
        self.channel = None
        self.exchange = None

    async def publish_event(self, event: PipelineEvent) -> bool:
        """
        Publish an event with its type as routing key.

        Args:
            event: PipelineEvent to publish

        Returns:
            True if published (or logged in mock mode), False on publish failure
        """
        if not self.is_connected:
            logger.debug(
                f"Mock mode: Would publish event {event.event_type.value}: "
                f"{event.model_dump_json()}"
            )
            return True

        routing_key = event.event_type.value
        try:
            message = Message(
                body=event.model_dump_json().encode(),
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                content_type="application/json",
            )
            await self.exchange.publish(message, routing_key=routing_key)
            logger.debug(f"Published event {routing_key} for file {event.file_uuid}")
            return True
        except Exception as e:
            logger.error(f"❌ Failed to publish event {routing_key}: {e}")
            return False


class EventPublishingObserver(EventCollector):
    """
    Observer that forwards notifications to an EventPublisher.

    Hooks are synchronous, so each publish is scheduled as a task on the
    running loop. Events emitted outside a running loop are dropped with a
    debug log.
    """

    def __init__(self, publisher: EventPublisher):
        self.publisher = publisher
        self._pending: Set[asyncio.Task] = set()

    def emit(self, event: PipelineEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop, dropping event {event.event_type.value}")
            return

        task = loop.create_task(self.publisher.publish_event(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for scheduled publishes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# Global event publisher instance
event_publisher = EventPublisher()
