from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("ENABLE_TRACING", "false")

from assembly.api import deps
from assembly.api.deps import get_code_delivery, get_db_session
from assembly.core.config import Settings
from assembly.main import app
from assembly.models import Assembly, Base, InternalHolder, Member, MemberRole, Unit
from assembly.obs import AuditMiddleware
from assembly.services.change_events import ChangeEventPublisher


class InMemoryS3Client:
    """Simple in-memory S3 stub used by the audit middleware during tests."""

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, bytes]] = {}

    def put_object(
        self,
        *,
        Bucket: str,
        Key: str,
        Body: bytes,
        ContentType: str | None = None,
        **_: object,
    ) -> dict[str, str]:
        bucket = self._buckets.setdefault(Bucket, {})
        bucket[Key] = Body.encode("utf-8") if isinstance(Body, str) else Body
        return {"ETag": "in-memory"}

    @property
    def buckets(self) -> dict[str, dict[str, bytes]]:
        return self._buckets


class DummyKafkaProducer:
    def __init__(self) -> None:
        self.messages: list[dict[str, object]] = []

    def send(
        self,
        topic: str,
        value: dict[str, str],
        headers: list[tuple[str, bytes]] | None = None,
    ) -> None:
        self.messages.append({"topic": topic, "value": value, "headers": headers})

    def flush(self) -> None:
        return None

    def values(self) -> list[dict[str, str]]:
        return [message["value"] for message in self.messages]


@dataclass
class RecordingCodeDelivery:
    """Captures issued codes instead of sending them to a gateway."""

    sent: list[dict[str, str]] = field(default_factory=list)

    def deliver(self, *, member: Member, code: str, challenge_id: str) -> None:
        self.sent.append({"member_id": member.id, "code": code, "challenge_id": challenge_id})

    def last_code(self) -> str:
        return self.sent[-1]["code"]


engine = create_engine(
    "sqlite+pysqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(autouse=True)
def audit_s3_client(monkeypatch: pytest.MonkeyPatch) -> Iterator[InMemoryS3Client]:
    client = InMemoryS3Client()

    def _client_factory(*args: object, **kwargs: object) -> InMemoryS3Client:
        return client

    monkeypatch.setattr("assembly.obs.audit.boto3.client", _client_factory)
    stack = getattr(app, "middleware_stack", None)
    middleware = getattr(stack, "app", None)
    while middleware is not None and hasattr(middleware, "app"):
        if isinstance(middleware, AuditMiddleware):
            middleware._s3_client = None
        middleware = getattr(middleware, "app", None)
    yield client


@pytest.fixture(autouse=True)
def kafka_producer(monkeypatch: pytest.MonkeyPatch) -> Iterator[DummyKafkaProducer]:
    producer = DummyKafkaProducer()
    monkeypatch.setattr(
        "assembly.services.change_events.KafkaProducer", lambda *args, **kwargs: producer
    )
    monkeypatch.setattr(deps, "_publisher", None)
    yield producer


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url="sqlite+pysqlite://",
        enable_tracing=False,
        enable_change_events=True,
        reconciliation_grace_seconds=120,
    )


@pytest.fixture()
def publisher(settings: Settings) -> ChangeEventPublisher:
    return ChangeEventPublisher(settings=settings)


@pytest.fixture()
def code_delivery() -> RecordingCodeDelivery:
    return RecordingCodeDelivery()


@pytest.fixture()
def db_session() -> Iterator[Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


def add_member(
    session: Session,
    assembly_id: str,
    name: str,
    document: str,
    *,
    phone: str | None = None,
    role: MemberRole = MemberRole.OWNER,
) -> Member:
    member = Member(
        assembly_id=assembly_id,
        full_name=name,
        document_number=document,
        phone_number=phone,
        role=role,
    )
    session.add(member)
    session.flush()
    return member


def add_unit(session: Session, assembly_id: str, number: str, coefficient: str, owner: Member) -> Unit:
    unit = Unit(
        assembly_id=assembly_id,
        number=number,
        coefficient=Decimal(coefficient),
        owner_id=owner.id,
        rights_holder=InternalHolder(member_id=owner.id),
    )
    session.add(unit)
    session.flush()
    return unit


@pytest.fixture()
def assembly_data(db_session: Session) -> SimpleNamespace:
    """One assembly: Alice owns 101, Bob owns 102 and 103, Carol owns nothing."""

    db_session.add(Assembly(id="asm-1", name="Annual Assembly"))
    db_session.flush()
    alice = add_member(db_session, "asm-1", "Alice Ortiz", "CC-100", phone="+570000100")
    bob = add_member(db_session, "asm-1", "Bob Rivas", "CC-200", phone="+570000200")
    carol = add_member(db_session, "asm-1", "Carol Mejía", "CC-300")
    unit_101 = add_unit(db_session, "asm-1", "101", "0.30", alice)
    unit_102 = add_unit(db_session, "asm-1", "102", "0.45", bob)
    unit_103 = add_unit(db_session, "asm-1", "103", "0.25", bob)
    db_session.commit()
    return SimpleNamespace(
        assembly_id="asm-1",
        alice=alice.id,
        bob=bob.id,
        carol=carol.id,
        unit_101=unit_101.id,
        unit_102=unit_102.id,
        unit_103=unit_103.id,
    )


@pytest.fixture()
def client(
    db_session: Session,
    audit_s3_client: InMemoryS3Client,
    code_delivery: RecordingCodeDelivery,
) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        try:
            yield db_session
        finally:
            db_session.rollback()

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_code_delivery] = lambda: code_delivery

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.pop(get_db_session, None)
    app.dependency_overrides.pop(get_code_delivery, None)
