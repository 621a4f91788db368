import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import hkdesk.models  # noqa: F401
from hkdesk.config import Settings
from hkdesk.database import Base
from tests.helpers import FakeWhatsApp

PEOPLE = [
    {"name": "Yossi", "phone": "972501111111", "type": "Electrician"},
    {"name": "Dana", "phone": "972502222222", "type": "Electrician"},
    {"name": "Avi", "phone": "972503333333", "type": "Plumber"},
]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Real SQLAlchemy session on in-memory SQLite."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def people_file(tmp_path):
    path = tmp_path / "people.json"
    path.write_text(json.dumps(PEOPLE), encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path, people_file):
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        whatsapp_access_token="wa-token",
        whatsapp_verify_token="verify-me",
        whatsapp_phone_number_id="biz-hk",
        whatsapp_specialist_phone_number_id="biz-spec",
        openai_api_key="sk-test",
        media_dir=str(tmp_path / "media"),
        public_base_url="https://desk.example.com",
        media_signing_secret="media-secret",
        people_directory_path=str(people_file),
        alert_bot_token=None,
        alert_chat_id=None,
    )


@pytest.fixture
def fake_whatsapp():
    return FakeWhatsApp()
