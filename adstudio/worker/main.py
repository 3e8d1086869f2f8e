"""
Media worker - consumes post-processing jobs from RabbitMQ and sweeps stale jobs.
"""

import json
import signal
import time

import pika
import redis
import structlog

from adstudio.core.config import settings
from adstudio.core.messaging import (
    MEDIA_EXCHANGE,
    POSTPROCESS_QUEUE,
    POSTPROCESS_ROUTING_KEY,
    declare_topology,
)
from adstudio.models import SessionLocal, create_tables
from adstudio.services import PostProcessor, StorageService, sweep_stale_jobs

from .tasks import WorkerContext, process_job

logger = structlog.get_logger()

shutdown_requested = False


def signal_handler(signum, frame):
    global shutdown_requested
    logger.info("shutdown_requested", signal=signum)
    shutdown_requested = True


def build_context() -> WorkerContext:
    storage = StorageService(settings)
    return WorkerContext(
        session_factory=SessionLocal,
        postprocessor=PostProcessor(storage),
        redis=redis.from_url(settings.redis_url),
        settings=settings,
    )


def retry_delay(retry_count: int) -> int:
    """Exponential backoff, capped at five minutes."""
    return min(settings.retry_delay * (2 ** (retry_count - 1)), 300)


def handle_message(ctx: WorkerContext, channel, method, properties, body) -> None:
    try:
        message = json.loads(body)
        job_id = message["job_id"]

        logger.info("job_received", job_id=job_id)

        retry_count = 0
        if properties.headers and "x-retry-count" in properties.headers:
            retry_count = properties.headers["x-retry-count"]

        result = process_job(ctx, job_id, retry_count)

        if result.get("status") == "failed" and result.get("retry"):
            retry_count += 1
            delay = retry_delay(retry_count)
            logger.info("job_retry_scheduled", job_id=job_id, retry=retry_count, delay=delay)
            time.sleep(delay)

            channel.basic_publish(
                exchange=MEDIA_EXCHANGE,
                routing_key=POSTPROCESS_ROUTING_KEY,
                body=body,
                properties=pika.BasicProperties(
                    delivery_mode=2,
                    content_type="application/json",
                    headers={"x-retry-count": retry_count},
                ),
            )

        channel.basic_ack(delivery_tag=method.delivery_tag)

    except (json.JSONDecodeError, KeyError) as e:
        logger.error("invalid_message", error=str(e))
        channel.basic_nack(delivery_tag=method.delivery_tag, requeue=False)

    except Exception as e:
        logger.error("processing_error", error=str(e))
        channel.basic_nack(delivery_tag=method.delivery_tag, requeue=True)


def run_sweep(ctx: WorkerContext) -> None:
    db = ctx.session_factory()
    try:
        sweep_stale_jobs(db)
    except Exception as e:
        db.rollback()
        logger.error("stale_sweep_failed", error=str(e))
    finally:
        db.close()


def main():
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    if settings.auto_create_tables:
        create_tables()

    ctx = build_context()
    logger.info("worker_starting", queue=POSTPROCESS_QUEUE)
    last_sweep = 0.0

    while not shutdown_requested:
        try:
            connection = pika.BlockingConnection(pika.URLParameters(settings.rabbitmq_url))
            channel = connection.channel()
            declare_topology(channel)

            # Prefetch 1 message at a time
            channel.basic_qos(prefetch_count=1)
            channel.basic_consume(
                queue=POSTPROCESS_QUEUE,
                on_message_callback=lambda ch, method, props, body: handle_message(
                    ctx, ch, method, props, body
                ),
            )

            logger.info("worker_ready", queue=POSTPROCESS_QUEUE)

            while not shutdown_requested:
                connection.process_data_events(time_limit=1)
                if time.monotonic() - last_sweep >= settings.stale_sweep_interval_seconds:
                    run_sweep(ctx)
                    last_sweep = time.monotonic()

            connection.close()

        except pika.exceptions.AMQPConnectionError as e:
            logger.error("rabbitmq_connection_error", error=str(e))
            if not shutdown_requested:
                time.sleep(5)

        except Exception as e:
            logger.error("worker_error", error=str(e))
            if not shutdown_requested:
                time.sleep(5)

    ctx.postprocessor.close()
    logger.info("worker_stopped")


if __name__ == "__main__":
    main()
