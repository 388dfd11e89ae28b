"""Kafka transport: JSON producer and the upload stream consumer loop."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer

from common.logging_config import get_logger
from common.protocol import encode_value

logger = get_logger(__name__)

RecordHandler = Callable[[Optional[bytes], Optional[bytes]], Awaitable[None]]
CONSUMER_RETRY_BACKOFF_SECONDS = 5


class MessageProducer:
    """
    Publishes JSON records keyed by message tag.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str,
        producer: Optional[AIOKafkaProducer] = None,
    ):
        self._producer = producer or AIOKafkaProducer(
            bootstrap_servers=bootstrap_servers,
            client_id=client_id,
            acks="all",
        )

    async def start(self) -> None:
        await self._producer.start()
        logger.info("Kafka producer started")

    async def stop(self) -> None:
        await self._producer.stop()
        logger.info("Kafka producer stopped")

    async def send(self, topic: str, key: str, value: Dict[str, Any]) -> None:
        """
        Publish one record and wait for the broker acknowledgement.

        Args:
            topic: Destination topic
            key: Message tag, also used as partition key
            value: JSON-serializable record value
        """
        await self._producer.send_and_wait(topic, key=key.encode('utf-8'), value=encode_value(value))


class UploadStreamConsumer:
    """
    Background task that feeds every record of the upload stream topic to a handler.
    A failing record is logged and skipped; the loop keeps consuming.
    """

    def __init__(
        self,
        topic: str,
        handler: RecordHandler,
        bootstrap_servers: str = "",
        group_id: str = "",
        client_id: str = "",
        consumer: Optional[AIOKafkaConsumer] = None,
        retry_backoff_seconds: float = CONSUMER_RETRY_BACKOFF_SECONDS,
    ):
        self.topic = topic
        self.retry_backoff_seconds = retry_backoff_seconds
        self._handler = handler
        self._consumer = consumer or AIOKafkaConsumer(
            topic,
            bootstrap_servers=bootstrap_servers,
            group_id=group_id,
            client_id=client_id,
            auto_offset_reset="earliest",
        )
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.processed_count = 0
        self.failed_count = 0
        self.fetch_error_count = 0

    async def start(self) -> None:
        """Start the consumer and the background loop."""
        if self._running:
            logger.warning("Upload stream consumer already running")
            return

        await self._consumer.start()
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Subscribed to upload stream topic '{self.topic}'")

    async def stop(self) -> None:
        """Stop the background loop and close the consumer."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        await self._consumer.stop()
        logger.info("Stopped upload stream consumer")

    @property
    def is_alive(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    async def _run(self) -> None:
        """Main consume loop. Fetch errors are logged and the loop resumes after a backoff."""
        while self._running:
            try:
                async for record in self._consumer:
                    await self.process_record(record.key, record.value)
                    if not self._running:
                        break
                break
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.fetch_error_count += 1
                logger.error(f"Error while consuming upload stream: {e}", exc_info=True)
                await asyncio.sleep(self.retry_backoff_seconds)

    async def process_record(self, key: Optional[bytes], value: Optional[bytes]) -> None:
        """Run the handler for one record, isolating its failures."""
        try:
            await self._handler(key, value)
            self.processed_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failed_count += 1
            logger.error(f"Failed to process upload stream record [key={key!r}]: {e}", exc_info=True)
