"""
Kafka event publisher: fire-and-forget.

Publishes assessment-submitted events; the mail relay consumes the topic
and emails the product's reviewers. Gracefully degrades if Kafka is
unavailable or disabled.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

import structlog

from app.core.config import get_settings
from app.models.renewal import Product, RenewalAssessment

logger = structlog.get_logger()

_producer = None


async def _get_producer():
    global _producer
    settings = get_settings()
    if not settings.kafka_enabled:
        return None
    if _producer is None:
        from aiokafka import AIOKafkaProducer
        _producer = AIOKafkaProducer(bootstrap_servers=settings.kafka_bootstrap)
        await _producer.start()
    return _producer


async def close_producer() -> None:
    global _producer
    if _producer is not None:
        await _producer.stop()
        _producer = None


def build_submission_event(assessment: RenewalAssessment, product: Optional[Product]) -> dict[str, Any]:
    submitted_at = assessment.submitted_at
    return {
        "event_type": "RENEWAL_ASSESSMENT_SUBMITTED",
        "assessment_id": assessment.id,
        "product_id": assessment.product_id,
        "product_name": product.product if product is not None else None,
        "vendor": product.vendor if product is not None else None,
        "recommendation": assessment.recommendation,
        "submitter_email": assessment.submitter_email,
        "submitter_name": assessment.submitter_name,
        "submitter_division": assessment.submitter_division,
        "submitted_at": submitted_at.isoformat() if isinstance(submitted_at, datetime) else None,
    }


async def publish_submission_event(event: dict[str, Any]) -> bool:
    """Returns True when the event was handed to Kafka. Never raises."""
    settings = get_settings()
    if not settings.kafka_enabled:
        logger.info("notification_skipped_kafka_disabled", assessment_id=event.get("assessment_id"))
        return False

    try:
        producer = await _get_producer()
        if producer:
            await producer.send_and_wait(
                settings.kafka_topic_renewal_events,
                json.dumps(event).encode("utf-8"),
                key=str(event["product_id"]).encode("utf-8"),
            )
            logger.info("kafka_event_published", assessment_id=event.get("assessment_id"))
            return True
    except Exception as e:
        # Fire-and-forget: log but don't fail the request
        logger.warning("kafka_publish_failed", assessment_id=event.get("assessment_id"), error=str(e))
    return False
