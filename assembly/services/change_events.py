"""Kafka change notifications for attendance, proxy and ballot writes.

Events only signal that state *may* have changed. Consumers never read the
payload beyond the assembly id; they recompute from the store, so lost or
duplicated events are harmless.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from kafka import KafkaConsumer, KafkaProducer
from kafka.errors import KafkaError
from pydantic import BaseModel, ValidationError

from assembly.core.config import Settings, get_settings
from assembly.obs import current_traceparent

logger = logging.getLogger(__name__)


class ChangeTopic(str, Enum):
    ATTENDANCE = "attendance"
    PROXY = "proxy"
    BALLOT = "ballot"


class ChangeEvent(BaseModel):
    event_id: str
    assembly_id: str
    topic: ChangeTopic
    kind: str
    occurred_at: datetime

    @classmethod
    def create(cls, *, assembly_id: str, topic: ChangeTopic, kind: str) -> "ChangeEvent":
        return cls(
            event_id=uuid4().hex,
            assembly_id=assembly_id,
            topic=topic,
            kind=kind,
            occurred_at=datetime.now(timezone.utc),
        )


class ChangeEventPublisher:
    """Publishes change events after a unit of work has committed."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        producer_factory: Callable[[], KafkaProducer] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._producer_factory = producer_factory or self._default_factory
        self._producer: KafkaProducer | None = None

    def _default_factory(self) -> KafkaProducer:
        return KafkaProducer(
            bootstrap_servers=self._settings.kafka_bootstrap_servers.split(","),
            value_serializer=lambda value: json.dumps(value).encode("utf-8"),
        )

    def publish(self, *, assembly_id: str, topic: ChangeTopic, kind: str) -> None:
        if not self._settings.enable_change_events:
            return
        event = ChangeEvent.create(assembly_id=assembly_id, topic=topic, kind=kind)
        headers = []
        traceparent = current_traceparent()
        if traceparent:
            headers.append(("traceparent", traceparent.encode("utf-8")))
        try:
            if self._producer is None:
                self._producer = self._producer_factory()
            self._producer.send(
                self._settings.change_events_topic,
                value=event.model_dump(mode="json"),
                headers=headers,
            )
            self._producer.flush()
        except KafkaError:
            # The write already committed; readers recompute on their next pull.
            logger.warning(
                "failed to publish change event",
                extra={"assembly_id": assembly_id, "topic": topic.value, "kind": kind},
                exc_info=True,
            )


class ChangeEventConsumer:
    """Polls change events and invokes ``on_change`` once per affected assembly."""

    def __init__(
        self,
        *,
        on_change: Callable[[str, str | None], None],
        settings: Settings | None = None,
        consumer_factory: Callable[[], KafkaConsumer] | None = None,
    ) -> None:
        self._on_change = on_change
        self._settings = settings or get_settings()
        self._consumer_factory = consumer_factory or self._default_factory
        self._consumer: KafkaConsumer | None = None

    def _default_factory(self) -> KafkaConsumer:
        return KafkaConsumer(
            self._settings.change_events_topic,
            bootstrap_servers=self._settings.kafka_bootstrap_servers.split(","),
            value_deserializer=lambda data: json.loads(data.decode("utf-8")),
            auto_offset_reset="latest",
            enable_auto_commit=False,
            group_id=self._settings.quorum_monitor_group,
        )

    def poll_once(self) -> int:
        """Return the number of assemblies recomputed in this poll."""

        if self._consumer is None:
            self._consumer = self._consumer_factory()
        records = self._consumer.poll(timeout_ms=1000)
        if not records:
            return 0

        touched: dict[str, str | None] = {}
        for partition_records in records.values():
            for record in partition_records:
                try:
                    event = ChangeEvent.model_validate(record.value)
                except ValidationError:
                    logger.warning("discarding malformed change event", extra={"value": record.value})
                    continue
                touched[event.assembly_id] = _traceparent_of(record)

        for assembly_id, traceparent in touched.items():
            self._on_change(assembly_id, traceparent)
        self._consumer.commit()
        return len(touched)


def _traceparent_of(record: object) -> str | None:
    for key, value in getattr(record, "headers", None) or []:
        if key == "traceparent":
            return value.decode("utf-8")
    return None


__all__ = ["ChangeEvent", "ChangeEventConsumer", "ChangeEventPublisher", "ChangeTopic"]
