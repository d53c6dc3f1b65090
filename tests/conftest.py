from pathlib import Path
from typing import List, Set, Tuple

import pytest
from fastapi.testclient import TestClient

from blogmail.config import Settings
from blogmail.database import get_engine
from blogmail.store import Store
from blogmail.web.app import create_app

TEMPLATE = "<p>Hi {{ name }}</p><h1>{{ title }}</h1><div>{{ content | safe }}</div>"


class FakeMailer:
    """Stands in for Mailer; fails for any address listed in `failing`."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, int]] = []
        self.failing: Set[str] = set()

    def send(self, subscriber, article) -> bool:
        self.calls.append((subscriber.email, article.id))
        return subscriber.email not in self.failing


class FakeSMTP:
    """Records what Mailer does with smtplib.SMTP."""

    instances: List["FakeSMTP"] = []
    refuse: Set[str] = set()

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.tls = False
        self.credentials = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def starttls(self) -> None:
        self.tls = True

    def login(self, user: str, password: str) -> None:
        self.credentials = (user, password)

    def send_message(self, msg) -> None:
        import smtplib

        if str(msg["To"]) in FakeSMTP.refuse:
            raise smtplib.SMTPRecipientsRefused({msg["To"]: (550, b"unreachable")})
        self.messages.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.refuse = set()
    monkeypatch.setattr("blogmail.delivery.email.smtplib.SMTP", FakeSMTP)
    return FakeSMTP


@pytest.fixture
def template_path(tmp_path: Path) -> Path:
    path = tmp_path / "email_template.html"
    path.write_text(TEMPLATE, encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path: Path, template_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'blog.db'}",
        smtp_host="smtp.example.com",
        smtp_username="mailer",
        smtp_password="secret",
        email_from="news@example.com",
        email_template_path=template_path,
    )


@pytest.fixture
def store(settings: Settings) -> Store:
    store = Store(get_engine(settings.database_url))
    store.create_tables()
    yield store
    store.engine.dispose()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def client(settings: Settings, store: Store, mailer: FakeMailer) -> TestClient:
    app = create_app(settings=settings, store=store, mailer=mailer)
    with TestClient(app) as client:
        yield client
