"""
Security alerts over Google Cloud Pub/Sub.

Enabled only when PROJECT_ID and TOPIC_ID are set. Publishing failures are
logged and never break the request that triggered them.
"""
import os
import json
import logging
from datetime import datetime, timezone
from dotenv import load_dotenv
from google.cloud import pubsub_v1

load_dotenv()

logger = logging.getLogger(__name__)

PROJECT_ID = os.getenv("PROJECT_ID")
TOPIC_ID = os.getenv("TOPIC_ID")

PUBSUB_ENABLED = bool(PROJECT_ID and TOPIC_ID)

_publisher = None


def _get_publisher():
    global _publisher
    if _publisher is None:
        _publisher = pubsub_v1.PublisherClient()
    return _publisher


def publish_security_event(event: str, data: dict) -> str | None:
    """Publish ``{"event", "data", "published_at"}`` and return the message id."""
    if not PUBSUB_ENABLED:
        logger.debug(f"Pub/Sub disabled, security event {event} not published")
        return None

    payload = {
        "event": event,
        "data": data,
        "published_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        publisher = _get_publisher()
        topic_path = publisher.topic_path(PROJECT_ID, TOPIC_ID)
        future = publisher.publish(topic_path, json.dumps(payload, default=str).encode("utf-8"))
        message_id = future.result(timeout=10)
        logger.info(f"📣 Security event {event} published with ID: {message_id}")
        return message_id
    except Exception as e:
        logger.error(f"❌ Failed to publish security event {event}: {e}")
        return None
