from __future__ import annotations

import json
import logging

import pika

from . import config

logger = logging.getLogger(__name__)


def _connect() -> pika.BlockingConnection:
    params = pika.URLParameters(config.RABBITMQ_URL)
    params.heartbeat = 30
    params.blocked_connection_timeout = 30
    return pika.BlockingConnection(params)


def publish_event(routing_key: str, payload: dict) -> None:
    if not config.EVENTS_ENABLED:
        logger.debug("events disabled, dropping %s", routing_key)
        return

    connection = _connect()
    try:
        ch = connection.channel()
        ch.exchange_declare(exchange=config.EVENTS_EXCHANGE, exchange_type="topic", durable=True)
        body = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
        ch.basic_publish(
            exchange=config.EVENTS_EXCHANGE,
            routing_key=routing_key,
            body=body,
            properties=pika.BasicProperties(
                content_type="application/json",
                delivery_mode=2,
            ),
        )
    finally:
        connection.close()
    logger.info("published %s", routing_key)


def publish_event_after_commit(routing_key: str, payload: dict) -> None:
    """Publish for a transaction that is already committed.

    The database state is authoritative, so a broker failure is logged and
    not raised back to the request.
    """
    try:
        publish_event(routing_key, payload)
    except Exception:
        logger.exception("failed to publish %s", routing_key)
