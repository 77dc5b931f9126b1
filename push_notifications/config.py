"""Environment-driven settings for the dispatch pipeline and the Kafka worker.

Every reader raises `RuntimeError` naming the offending variable, so a bad
deployment fails at start-up instead of mid-dispatch.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .types import DeliveryOptions

DEFAULT_CHANGES_TOPIC = "documents.changed"
# Expo keeps receipts for a day and recommends asking after about 15 minutes.
DEFAULT_RECEIPT_DELAY_SECONDS = 900.0


@dataclass(frozen=True)
class DispatchSettings:
    send_chunk_size: int = 100
    receipt_chunk_size: int = 300
    max_send_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    receipt_delay_seconds: float = DEFAULT_RECEIPT_DELAY_SECONDS
    concurrent_scopes: bool = False
    registry_field: str = "tokens"
    delivery: DeliveryOptions = DeliveryOptions()

    def __post_init__(self) -> None:
        if self.send_chunk_size <= 0:
            raise ValueError("send_chunk_size must be > 0")
        if self.receipt_chunk_size <= 0:
            raise ValueError("receipt_chunk_size must be > 0")
        if self.max_send_attempts <= 0:
            raise ValueError("max_send_attempts must be > 0")
        if self.retry_base_delay_seconds < 0 or self.receipt_delay_seconds < 0:
            raise ValueError("delays must be >= 0")

    def backoff_delay(self, failed_attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return self.retry_base_delay_seconds * (2 ** (failed_attempt - 1))

    @classmethod
    def from_env(cls) -> DispatchSettings:
        sound = os.getenv("PUSH_DEFAULT_SOUND", "default").strip()
        channel_id = os.getenv("PUSH_ANDROID_CHANNEL_ID", "").strip()
        priority = os.getenv("PUSH_PRIORITY", "").strip()
        return cls(
            send_chunk_size=env_int("PUSH_SEND_CHUNK_SIZE", 100),
            receipt_chunk_size=env_int("PUSH_RECEIPT_CHUNK_SIZE", 300),
            max_send_attempts=env_int("PUSH_MAX_SEND_ATTEMPTS", 3),
            retry_base_delay_seconds=env_float("PUSH_RETRY_BASE_DELAY_SECONDS", 1.0),
            receipt_delay_seconds=env_float(
                "PUSH_RECEIPT_DELAY_SECONDS", DEFAULT_RECEIPT_DELAY_SECONDS
            ),
            concurrent_scopes=env_bool("PUSH_CONCURRENT_SCOPES", default=False),
            registry_field=os.getenv("PUSH_REGISTRY_FIELD", "tokens").strip() or "tokens",
            delivery=DeliveryOptions(
                sound=sound or None,
                priority=priority or None,
                channel_id=channel_id or None,
            ),
        )


@dataclass(frozen=True)
class KafkaSettings:
    bootstrap_servers: tuple[str, ...]
    topic: str = DEFAULT_CHANGES_TOPIC
    group_id: str = "push-notifications-worker"
    auto_offset_reset: str = "earliest"
    producer_acks: str = "all"
    poll_timeout_ms: int = 1000
    max_records: int = 50
    send_timeout_seconds: float = 10.0
    dlq_enabled: bool = True
    dlq_topic: str = f"{DEFAULT_CHANGES_TOPIC}.dlq"
    dlq_send_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> KafkaSettings:
        servers = tuple(
            item.strip()
            for item in required_env("KAFKA_BOOTSTRAP_SERVERS").split(",")
            if item.strip()
        )
        if not servers:
            raise RuntimeError("KAFKA_BOOTSTRAP_SERVERS must include at least one host:port")

        topic = os.getenv("KAFKA_TOPIC_DOCUMENT_CHANGES", "").strip() or DEFAULT_CHANGES_TOPIC
        send_timeout = env_float("KAFKA_SEND_TIMEOUT_SECONDS", 10.0)
        poll_timeout_ms = int(env_float("KAFKA_POLL_TIMEOUT_SECONDS", 1.0) * 1000)
        if poll_timeout_ms <= 0:
            raise RuntimeError("KAFKA_POLL_TIMEOUT_SECONDS must be > 0")

        return cls(
            bootstrap_servers=servers,
            topic=topic,
            group_id=os.getenv("KAFKA_GROUP_ID", "push-notifications-worker"),
            auto_offset_reset=os.getenv("KAFKA_AUTO_OFFSET_RESET", "earliest"),
            producer_acks=os.getenv("KAFKA_PRODUCER_ACKS", "all"),
            poll_timeout_ms=poll_timeout_ms,
            max_records=env_int("KAFKA_MAX_RECORDS_PER_POLL", 50),
            send_timeout_seconds=send_timeout,
            dlq_enabled=env_bool("KAFKA_DLQ_ENABLED", default=True),
            dlq_topic=os.getenv("KAFKA_TOPIC_DOCUMENT_CHANGES_DLQ", f"{topic}.dlq"),
            dlq_send_timeout_seconds=env_float("KAFKA_DLQ_SEND_TIMEOUT_SECONDS", send_timeout),
        )


def required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value.strip()


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer value for {name}: {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0")
    return value


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid number value for {name}: {raw!r}") from exc
    if value < 0:
        raise RuntimeError(f"{name} must be >= 0")
    return value


def env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise RuntimeError(f"Invalid boolean value for {name}: {raw!r}")


def load_env_file(path: Path) -> None:
    """Load `KEY=value` lines into the environment without overriding it."""
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        text = line.strip()
        if not text or text.startswith("#") or "=" not in text:
            continue
        key, _, value = text.partition("=")
        key = key.removeprefix("export ").strip()
        value = value.strip()
        if not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)
