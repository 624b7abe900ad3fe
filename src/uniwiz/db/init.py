from __future__ import annotations

from uniwiz.config import get_settings
from uniwiz.db.base import Base
from uniwiz.db.session import SessionLocal, engine
from uniwiz.db import models  # noqa: F401
from uniwiz.db.seed import seed_job_categories


def ensure_data_directories() -> None:
    settings = get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def init_database() -> dict[str, int]:
    ensure_data_directories()
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as session:
        inserted = seed_job_categories(session)
    return {"seeded_categories": inserted}
