import os

from cryptography.fernet import Fernet

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("STORE_TIMEOUT_SECONDS", "0")

from datetime import datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from discount_sync.connectors.base import DiscountWindow, IntegrationError, PushAck, SourceProduct, TargetProduct
from discount_sync.database import Base, enable_sqlite_foreign_keys, get_db
from discount_sync.main import app
from discount_sync.models import Integration, NotificationChannel, Store
from discount_sync.notifications.base import Notifier
from discount_sync.notifications.dispatcher import NotificationDispatcher
from discount_sync.utils.encrypt import encrypt_credentials

SAO_PAULO = ZoneInfo("America/Sao_Paulo")


@pytest.fixture
def db() -> Session:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def client(db: Session) -> TestClient:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def make_store(db: Session, name: str, registration: str, active: bool = True,
               deleted_at: Optional[datetime] = None, document: Optional[str] = None) -> Store:
    store = Store(name=name, registration=registration, active=active, deleted_at=deleted_at, document=document)
    db.add(store)
    db.commit()
    db.refresh(store)
    return store


def make_integration(db: Session, type: str, config: dict, credentials: Optional[dict] = None,
                     base_url: str = "https://api.example.com", active: bool = True,
                     deleted_at: Optional[datetime] = None, name: Optional[str] = None) -> Integration:
    integration = Integration(
        name=name or f"{type.lower()} integration",
        type=type,
        base_url=base_url,
        config=config,
        credentials=encrypt_credentials(credentials) if credentials else None,
        active=active,
        deleted_at=deleted_at,
    )
    db.add(integration)
    db.commit()
    db.refresh(integration)
    return integration


def make_channel(db: Session, type: str, config: dict, credentials: Optional[dict] = None,
                 active: bool = True) -> NotificationChannel:
    channel = NotificationChannel(
        name=f"{type.lower()} channel",
        type=type,
        config=config,
        credentials=encrypt_credentials(credentials) if credentials else None,
        active=active,
    )
    db.add(channel)
    db.commit()
    db.refresh(channel)
    return channel


def fixed_window() -> DiscountWindow:
    return DiscountWindow(
        start=datetime(2026, 10, 18, 7, 25, tzinfo=SAO_PAULO),
        end=datetime(2026, 10, 18, 23, 59, tzinfo=SAO_PAULO),
        computed_at=datetime(2026, 10, 18, 10, 20, tzinfo=SAO_PAULO),
    )


class FakeSource:
    """In-memory source keyed by store registration."""

    def __init__(self, products: Optional[Dict[str, List[SourceProduct]]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.products = products or {}
        self.errors = errors or {}
        self.calls: List[str] = []
        self.closed = False

    def store_identifier(self, store) -> str:
        return store.registration

    async def fetch_discounted_products(self, store_identifier: str) -> List[SourceProduct]:
        self.calls.append(store_identifier)
        if store_identifier in self.errors:
            raise self.errors[store_identifier]
        return list(self.products.get(store_identifier, []))

    async def aclose(self) -> None:
        self.closed = True


class FakeTarget:
    """
    In-memory target. With mirror=True a successful push becomes the active set,
    otherwise fetch_active returns whatever was put in `active`.
    """

    def __init__(self, mirror: bool = True, push_errors: Optional[Dict[str, Exception]] = None,
                 fetch_errors: Optional[Dict[str, Exception]] = None,
                 active: Optional[Dict[str, List[TargetProduct]]] = None):
        self.mirror = mirror
        self.push_errors = push_errors or {}
        self.fetch_errors = fetch_errors or {}
        self.active = active or {}
        self.pushed: Dict[str, List[TargetProduct]] = {}
        self.windows: Dict[str, DiscountWindow] = {}
        self.closed = False

    async def push(self, store_registration: str, products: List[TargetProduct], window: DiscountWindow) -> PushAck:
        if store_registration in self.push_errors:
            raise self.push_errors[store_registration]
        self.pushed[store_registration] = list(products)
        self.windows[store_registration] = window
        if self.mirror:
            self.active[store_registration] = list(products)
        return PushAck(batch_name=f"{store_registration} batch", products_sent=len(products))

    async def fetch_active(self, store_registration: str) -> List[TargetProduct]:
        if store_registration in self.fetch_errors:
            raise self.fetch_errors[store_registration]
        return list(self.active.get(store_registration, []))

    async def aclose(self) -> None:
        self.closed = True


class FakeRegistry:
    def __init__(self, source: FakeSource, target: FakeTarget, error: Optional[Exception] = None):
        self.source = source
        self.target = target
        self.error = error
        self.requested: List[tuple] = []

    def source_config(self, integration_id):
        if self.error:
            raise self.error
        return None

    def source_connector(self, integration_id):
        self.requested.append(("source", integration_id))
        if self.error:
            raise self.error
        return self.source

    def target_connector(self, integration_id):
        self.requested.append(("target", integration_id))
        if self.error:
            raise self.error
        return self.target


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.messages: List[str] = []
        self.fail = fail

    async def send(self, text: str) -> None:
        if self.fail:
            raise IntegrationError("chat unreachable")
        self.messages.append(text)


class FakeChannels:
    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier
        self.requested: List[Optional[int]] = []

    def dispatcher_for(self, channel_id, enabled: bool = True) -> NotificationDispatcher:
        self.requested.append(channel_id)
        return NotificationDispatcher(self.notifier, enabled=enabled)
