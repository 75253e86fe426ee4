# parkalert/tests/conftest.py
import os
import pathlib
import tempfile

# must run before any parkalert import: db.session builds its engine at import time
_TMP = pathlib.Path(tempfile.mkdtemp(prefix="parkalert-tests-"))
os.environ["ENV"] = "test"
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP / 'parkalert_test.db'}"
os.environ["PUSH_SINKS"] = "log"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime, timezone
from typing import List

import httpx
import pytest
import pytest_asyncio

from parkalert.core.settings import Settings
from parkalert.db.models import ReputationEventType
from parkalert.db.session import SessionLocal, init_models, run_in_transaction
from parkalert.identity.codes import generate_ownership_key, hash_ownership_key, hash_plate
from parkalert.push import PushDispatcher, PushPayload
from parkalert.services.container import Services, build_services

T0 = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)


class RecordingSink:
    def __init__(self):
        self.sent: List[PushPayload] = []

    async def send(self, payload: PushPayload) -> None:
        self.sent.append(payload)


class Factory:
    """Shortcuts for the setup steps most tests share."""

    def __init__(self, services: Services):
        self.services = services
        self._plates = 0

    async def account(self) -> str:
        return (await self.services.accounts.create(now=T0)).account_id

    async def vehicle(self, owner: str, plate: str = None, origin: str = None):
        self._plates += 1
        plate = plate or f"34 TST {self._plates:03d}"
        identifier_hash = hash_plate(plate, self.services.registry.settings.PLATE_HASH_SALT)
        proof = hash_ownership_key(generate_ownership_key())
        await self.services.registry.register(identifier_hash, owner, proof, origin=origin, now=T0)
        return identifier_hash, proof

    async def adjust(self, account_id: str, delta: int) -> None:
        await run_in_transaction(
            SessionLocal, self.services.ledger.record_event, account_id, ReputationEventType.PENALTY, delta, now=T0
        )


@pytest.fixture
def t0():
    return T0


@pytest_asyncio.fixture
async def db():
    await init_models(drop=True)
    yield SessionLocal


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def push(sink) -> PushDispatcher:
    dispatcher = PushDispatcher(keep_recent=50)
    dispatcher.register(sink)
    return dispatcher


@pytest.fixture
def services(db, settings, push) -> Services:
    return build_services(db, settings, push)


@pytest.fixture
def factory(services) -> Factory:
    return Factory(services)


@pytest_asyncio.fixture
async def client(db):
    import parkalert.main as main

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=main.app), base_url="http://test") as c:
        yield c
