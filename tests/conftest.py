import pytest

from eventreminder.db.base import Base
from eventreminder.db.session import create_session_factory, create_store_engine
from tests.fakes import add_user, utc


@pytest.fixture
def store_engine(tmp_path):
    engine = create_store_engine(f"sqlite:///{tmp_path / 'store.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(store_engine):
    return create_session_factory(store_engine)


@pytest.fixture
def two_users_three_events(session_factory):
    """Users 9876543210 (two outstanding, one resolved) and 9123456780 (one outstanding)."""
    add_user(
        session_factory,
        "9876543210",
        [
            ("Dentist", utc(2026, 10, 19, 9, 30), "Bring x-rays", "high", "outstanding"),
            ("Pay rent", utc(2030, 1, 1, 0, 0), None, None, "outstanding"),
            ("Old task", utc(2020, 1, 1, 0, 0), None, "low", "resolved"),
        ],
    )
    add_user(
        session_factory,
        "9123456780",
        [("Standup", utc(2026, 10, 20, 4, 0), "", "low", "outstanding")],
    )
    return session_factory


@pytest.fixture
def make_settings():
    from eventreminder.core.config import ReminderSettings

    def _make(**overrides):
        values = dict(
            DATABASE_URL="sqlite://",
            WHATSAPP_PHONE_NUMBER_ID="555",
            WHATSAPP_ACCESS_TOKEN="token",
            METRICS_ENABLED=False,
        )
        values.update(overrides)
        return ReminderSettings(_env_file=None, **values)

    return _make
