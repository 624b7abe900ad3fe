from __future__ import annotations

import itertools
from collections.abc import Callable, Iterator
from datetime import timedelta
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from uniwiz.core.job import Job
from uniwiz.core.job_category import JobCategory
from uniwiz.core.notifications import Notifier
from uniwiz.core.values import utc_now
from uniwiz.db import models  # noqa: F401
from uniwiz.db.base import Base
from uniwiz.db.store import DataStore
from uniwiz.types import NotificationPayload
from uniwiz.users.base import UserAccount
from uniwiz.users.factory import register_user


class RecordingNotifier(Notifier):
    def __init__(self, store: DataStore):
        super().__init__(store)
        self.sent: list[NotificationPayload] = []

    def deliver(self, payload: NotificationPayload) -> bool:
        self.sent.append(payload)
        return super().deliver(payload)

    def of_type(self, type_: str) -> list[NotificationPayload]:
        return [payload for payload in self.sent if payload.type == type_]


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session(engine: Engine) -> Iterator[Session]:
    with Session(engine, autoflush=False) as db:
        yield db


@pytest.fixture()
def store(session: Session) -> DataStore:
    return DataStore(session)


@pytest.fixture()
def notifier(store: DataStore) -> RecordingNotifier:
    return RecordingNotifier(store)


@pytest.fixture()
def make_user(store: DataStore, notifier: RecordingNotifier) -> Callable[..., Any]:
    counter = itertools.count(1)

    def _make(role: str = "student", *, profile: dict[str, Any] | None = None, **overrides: Any) -> UserAccount:
        n = next(counter)
        data = {
            "email": f"{role}{n}@example.com",
            "first_name": role.title(),
            "last_name": f"Number{n}",
            "role": role,
            **overrides,
        }
        user = register_user(store, data, profile=profile, notifier=notifier)
        assert not isinstance(user, str), user
        return user

    return _make


@pytest.fixture()
def category(store: DataStore) -> JobCategory:
    created = JobCategory.create(store, "Engineering", "Software and hardware roles")
    assert not isinstance(created, str), created
    return created


@pytest.fixture()
def make_job(
    store: DataStore,
    notifier: RecordingNotifier,
    category: JobCategory,
    make_user: Callable[..., Any],
) -> Callable[..., Job]:
    def _make(publisher: UserAccount | None = None, **overrides: Any) -> Job:
        owner = publisher or make_user("publisher", company_name="Acme Labs")
        data = {
            "title": "Backend Intern",
            "description": "Build and test internal APIs",
            "category_id": category.id,
            "job_type": "internship",
            "payment_range": "1000 - 2000 USD",
            "location": "Colombo",
            "deadline": (utc_now() + timedelta(days=30)).date(),
            "vacancies": 1,
            **overrides,
        }
        job = Job.create(store, owner.id, data, notifier=notifier)
        assert not isinstance(job, str), job
        return job

    return _make
