from pathlib import Path

import pytest
from sqlmodel import Session

from services.notification_service.database import create_db, get_engine
from tests.utils import configure_sqlite_env


@pytest.fixture()
def session(tmp_path: Path):
    configure_sqlite_env("NOTIFICATION_DB_URL", tmp_path / "notifications.db")
    create_db()
    with Session(get_engine()) as session:
        yield session
