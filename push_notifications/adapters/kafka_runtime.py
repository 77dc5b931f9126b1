"""Kafka transport adapters for publishing and consuming document changes.

Mental model refresher:
- This module is transport glue to Kafka itself.
- It maps Kafka records into the consumer-handler adapter flow.
- Trigger rules and the dispatch pipeline still live in domain/application.
- kafka-python is blocking, so polling runs in a worker thread while the
  notification pipelines share one asyncio loop.
- Offsets are committed one record at a time. A record that cannot be used
  is committed only once its DLQ copy has been acknowledged.
- A record is committed right after dispatch. Receipt audits wait in
  background tasks so the poll loop stays inside `max.poll.interval.ms`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any, Mapping, Sequence

from ..application.pipeline import NotificationContext, PipelineResult, notify_all
from ..config import DispatchSettings, KafkaSettings
from ..types import NotificationEvent
from .consumer_handler import NotifyFn, handle_message
from .expo_push import get_receipts_via_expo_from_env, send_batch_via_expo_from_env
from .firestore_store import FirestoreUserStore

logger = logging.getLogger(__name__)


def publish_document_change_event(
    payload: Mapping[str, Any],
    *,
    topic: str | None = None,
) -> dict[str, Any]:
    """Publish one document-change record to Kafka."""
    kafka = _import_kafka_python()
    settings = KafkaSettings.from_env()

    producer = _build_producer(kafka, settings)
    try:
        future = producer.send(topic or settings.topic, value=dict(payload))
        metadata = future.get(timeout=settings.send_timeout_seconds)
        producer.flush(timeout=settings.send_timeout_seconds)
    finally:
        producer.close()

    return {
        "topic": metadata.topic,
        "partition": metadata.partition,
        "offset": metadata.offset,
    }


def run_push_worker_forever() -> int:
    """Run the Kafka consumer loop that turns document changes into pushes."""
    try:
        return asyncio.run(_run_worker())
    except KeyboardInterrupt:
        logger.info("push_worker_stopped reason=keyboard_interrupt")
        return 0


async def _run_worker() -> int:
    kafka = _import_kafka_python()
    settings = KafkaSettings.from_env()
    dispatch_settings = DispatchSettings.from_env()
    context = NotificationContext(
        store=FirestoreUserStore.from_env(registry_field=dispatch_settings.registry_field),
        send_batch=send_batch_via_expo_from_env,
        get_receipts=get_receipts_via_expo_from_env,
        settings=dispatch_settings,
        defer_audit=True,
    )

    async def notify(events: Sequence[NotificationEvent]) -> list[PipelineResult]:
        return await notify_all(events, context)

    consumer = kafka.KafkaConsumer(
        settings.topic,
        bootstrap_servers=list(settings.bootstrap_servers),
        group_id=settings.group_id,
        enable_auto_commit=False,
        auto_offset_reset=settings.auto_offset_reset,
    )
    dlq_producer = _build_producer(kafka, settings) if settings.dlq_enabled else None
    logger.info(
        "push_worker_started topic=%s group_id=%s dlq_enabled=%s dlq_topic=%s",
        settings.topic,
        settings.group_id,
        settings.dlq_enabled,
        settings.dlq_topic,
    )

    try:
        while True:
            batches = await asyncio.to_thread(
                consumer.poll,
                timeout_ms=settings.poll_timeout_ms,
                max_records=settings.max_records,
            )
            for records in (batches or {}).values():
                for message in records:
                    polled = PolledRecord(
                        message,
                        consumer=consumer,
                        dlq_producer=dlq_producer,
                        settings=settings,
                        kafka=kafka,
                    )
                    await polled.process(notify)
    except Exception:
        logger.exception("push_worker_error")
        return 1
    finally:
        if context.background_tasks:
            logger.warning(
                "push_worker_pending_audits_dropped count=%d", len(context.background_tasks)
            )
        _close_quietly(consumer, dlq_producer, settings)


class PolledRecord:
    """One polled Kafka message plus the commit and DLQ actions for it."""

    def __init__(
        self,
        message: Any,
        *,
        consumer: Any,
        dlq_producer: Any | None,
        settings: KafkaSettings,
        kafka: Any,
    ) -> None:
        self.message = message
        self.topic = str(message.topic)
        self.partition = int(message.partition)
        self.offset = int(message.offset)
        self.consumer = consumer
        self.dlq_producer = dlq_producer
        self.settings = settings
        self.kafka = kafka

    async def process(self, notify: NotifyFn) -> dict[str, Any] | None:
        try:
            payload = decode_change_record(self.message.value)
        except ValueError as exc:
            self.reject(f"decode_failed: {exc}", self.message.value)
            return None

        result = await handle_message(
            {
                "topic": self.topic,
                "partition": self.partition,
                "offset": self.offset,
                "value": payload,
            },
            notify=notify,
            commit=lambda _record: self.commit(),
            reject=lambda record, reason: self.reject(reason, record.get("value")),
        )
        logger.info(
            "push_worker_result topic=%s partition=%d offset=%d status=%s error=%s",
            self.topic,
            self.partition,
            self.offset,
            result["status"],
            result["error"],
        )
        return result

    def commit(self) -> None:
        partition = self.kafka.TopicPartition(self.topic, self.partition)
        self.consumer.commit(
            offsets={partition: _offset_and_metadata(self.kafka.OffsetAndMetadata, self.offset + 1)}
        )
        logger.debug(
            "push_worker_commit topic=%s partition=%d offset=%d",
            self.topic,
            self.partition,
            self.offset,
        )

    def reject(self, reason: str, source_payload: Any) -> None:
        if self.publish_to_dlq(reason, source_payload):
            self.commit()
            return
        logger.warning(
            "push_worker_no_commit topic=%s partition=%d offset=%d reason=%s",
            self.topic,
            self.partition,
            self.offset,
            reason,
        )

    def publish_to_dlq(self, reason: str, source_payload: Any) -> bool:
        if self.dlq_producer is None:
            return False

        dlq_payload = build_dlq_payload(
            source_topic=self.topic,
            source_partition=self.partition,
            source_offset=self.offset,
            source_payload=source_payload,
            failure_reason=reason,
        )
        try:
            future = self.dlq_producer.send(self.settings.dlq_topic, value=dlq_payload)
            metadata = future.get(timeout=self.settings.dlq_send_timeout_seconds)
        except Exception as exc:
            logger.error(
                "push_worker_dlq_failed topic=%s partition=%d offset=%d reason=%s error=%s",
                self.topic,
                self.partition,
                self.offset,
                reason,
                exc,
            )
            return False

        logger.warning(
            "push_worker_dlq topic=%s partition=%d offset=%d "
            "dlq_partition=%s dlq_offset=%s reason=%s",
            self.topic,
            self.partition,
            self.offset,
            metadata.partition,
            metadata.offset,
            reason,
        )
        return True


def encode_change_record(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_change_record(raw: bytes | str | Mapping[str, Any] | None) -> dict[str, Any]:
    """Decode a record value into a JSON object; `ValueError` otherwise."""
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValueError(f"record value is not UTF-8: {exc}") from exc
    if not isinstance(raw, str):
        raise ValueError(f"Unsupported Kafka payload type: {type(raw).__name__}")

    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Kafka payload must decode to a JSON object")
    return parsed


def build_dlq_payload(
    *,
    source_topic: str,
    source_partition: int,
    source_offset: int,
    source_payload: Any,
    failure_reason: str,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "event_type": f"{source_topic}.dlq",
        "failed_at": datetime.now(tz=UTC).isoformat(),
        "failure_reason": failure_reason,
        "source": {
            "topic": source_topic,
            "partition": source_partition,
            "offset": source_offset,
        },
        "payload": _to_json_compatible(source_payload),
    }

    event_id = source_payload.get("event_id") if isinstance(source_payload, Mapping) else None
    if isinstance(event_id, str) and event_id.strip():
        payload["source_event_id"] = event_id.strip()
    return payload


def _to_json_compatible(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _to_json_compatible(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_json_compatible(item) for item in value]
    return repr(value)


def _build_producer(kafka: Any, settings: KafkaSettings) -> Any:
    return kafka.KafkaProducer(
        bootstrap_servers=list(settings.bootstrap_servers),
        value_serializer=encode_change_record,
        acks=settings.producer_acks,
    )


def _close_quietly(consumer: Any, dlq_producer: Any | None, settings: KafkaSettings) -> None:
    try:
        consumer.close()
    except Exception as exc:
        logger.warning("push_worker_close_failed error=%s", exc)
    if dlq_producer is None:
        return
    try:
        dlq_producer.flush(timeout=settings.dlq_send_timeout_seconds)
        dlq_producer.close()
    except Exception as exc:
        logger.warning("push_worker_dlq_close_failed error=%s", exc)


def _import_kafka_python() -> SimpleNamespace:
    try:
        from kafka import KafkaConsumer, KafkaProducer, TopicPartition
        from kafka.structs import OffsetAndMetadata
    except Exception as exc:
        raise RuntimeError(
            "Kafka support requires `kafka-python`. Install with: pip install kafka-python"
        ) from exc
    return SimpleNamespace(
        KafkaConsumer=KafkaConsumer,
        KafkaProducer=KafkaProducer,
        TopicPartition=TopicPartition,
        OffsetAndMetadata=OffsetAndMetadata,
    )


def _offset_and_metadata(offset_and_metadata_type: Any, offset: int) -> Any:
    """Build kafka-python OffsetAndMetadata across version signatures."""
    try:
        return offset_and_metadata_type(offset, "", -1)
    except TypeError:
        return offset_and_metadata_type(offset, "")
