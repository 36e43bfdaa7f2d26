from __future__ import annotations

from jobboard.config import get_settings
from jobboard.db.base import Base
from jobboard.db.session import SessionLocal, engine
from jobboard.db import models  # noqa: F401
from jobboard.db.repositories import Repository


def ensure_data_directories() -> None:
    settings = get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def init_database() -> dict[str, int]:
    ensure_data_directories()
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as session:
        profiles = Repository(session).count_profiles()
    return {"tables": len(Base.metadata.tables), "profiles": profiles}
