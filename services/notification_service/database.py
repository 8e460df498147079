from typing import Generator

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from services.notification_service import config, models  # noqa: F401


_engines: dict[str, Engine] = {}


def get_engine() -> Engine:
    url = config.database_url()
    if url not in _engines:
        _engines[url] = create_engine(
            url, connect_args={"check_same_thread": False} if "sqlite" in url else {}
        )
    return _engines[url]


def create_db() -> None:
    SQLModel.metadata.create_all(get_engine())


def get_session() -> Generator[Session, None, None]:
    with Session(get_engine()) as session:
        yield session
