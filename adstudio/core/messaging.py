import json

import pika
import structlog

from .config import settings

logger = structlog.get_logger()

MEDIA_EXCHANGE = "media"
POSTPROCESS_QUEUE = "media.postprocess"
POSTPROCESS_ROUTING_KEY = "postprocess"


def declare_topology(channel) -> None:
    channel.exchange_declare(exchange=MEDIA_EXCHANGE, exchange_type="direct", durable=True)
    channel.queue_declare(queue=POSTPROCESS_QUEUE, durable=True)
    channel.queue_bind(
        queue=POSTPROCESS_QUEUE, exchange=MEDIA_EXCHANGE, routing_key=POSTPROCESS_ROUTING_KEY
    )


class MessagePublisher:
    """Publishes post-processing work for the media worker over RabbitMQ."""

    def __init__(self, url: str | None = None) -> None:
        self._url = url or settings.rabbitmq_url
        self._connection: pika.BlockingConnection | None = None
        self._channel = None

    def _connect(self) -> None:
        if self._connection is None or self._connection.is_closed:
            self._connection = pika.BlockingConnection(pika.URLParameters(self._url))
            self._channel = self._connection.channel()
            declare_topology(self._channel)

    def publish_postprocess(self, job_id: str, user_id: str) -> None:
        self._connect()

        message = {"job_id": job_id, "user_id": user_id}
        self._channel.basic_publish(
            exchange=MEDIA_EXCHANGE,
            routing_key=POSTPROCESS_ROUTING_KEY,
            body=json.dumps(message),
            properties=pika.BasicProperties(
                delivery_mode=2,  # persistent
                content_type="application/json",
            ),
        )

        logger.info("postprocess_published", job_id=job_id, queue=POSTPROCESS_QUEUE)

    def close(self) -> None:
        if self._connection and not self._connection.is_closed:
            self._connection.close()
