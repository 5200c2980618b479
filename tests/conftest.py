from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Iterable, List

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from feedesk.db.base import Base
from feedesk.db import models  # noqa: F401
from feedesk.db.models import FeeAccount, ManualPayment, ScholarshipApplication
from feedesk.db.session import configure_session_maker
from feedesk.payment.manual_transfer import ManualPaymentReviewer
from feedesk.services.notifications import NotificationDispatcher


class FakeTransport:
    """Records delivered events; selected kinds can be made to fail or hang."""

    def __init__(self, fail_kinds: Iterable[str] = (), hang_kinds: Iterable[str] = ()) -> None:
        self.sent: List[Any] = []
        self.fail_kinds = set(fail_kinds)
        self.hang_kinds = set(hang_kinds)

    async def send(self, event: Any) -> bool:
        if event.kind in self.hang_kinds:
            await asyncio.sleep(30)
        if event.kind in self.fail_kinds:
            raise RuntimeError(f"{event.kind} endpoint down")
        self.sent.append(event)
        return True

    def kinds(self) -> List[str]:
        return [e.kind for e in self.sent]


class Seeder:
    def __init__(self, maker: async_sessionmaker) -> None:
        self.maker = maker

    async def add(self, obj: Any) -> Any:
        async with self.maker() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def student(self, **kw: Any) -> FeeAccount:
        kw.setdefault("full_name", "Ana Souza")
        kw.setdefault("email", "ana.souza@example.com")
        return await self.add(FeeAccount(**kw))

    async def application(self, student_id: int, scholarship_id: int = 7, **kw: Any) -> ScholarshipApplication:
        return await self.add(ScholarshipApplication(student_id=student_id, scholarship_id=scholarship_id, **kw))

    async def payment(self, student_id: int, fee_category: str, amount: str, **kw: Any) -> ManualPayment:
        return await self.add(
            ManualPayment(student_id=student_id, fee_category=fee_category, amount=Decimal(amount), **kw)
        )

    async def get(self, model: Any, ident: int) -> Any:
        async with self.maker() as session:
            return await session.get(model, ident)

    async def all(self, model: Any, *where: Any) -> List[Any]:
        async with self.maker() as session:
            rows = await session.scalars(select(model).where(*where))
            return list(rows)


@pytest_asyncio.fixture
async def db(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'feedesk.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    maker = async_sessionmaker(bind=engine, expire_on_commit=False)
    configure_session_maker(maker)
    try:
        yield maker
    finally:
        configure_session_maker(None)
        await engine.dispose()


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest_asyncio.fixture
async def dispatcher(transport):
    d = NotificationDispatcher(transport, timeout=0.5)
    try:
        yield d
    finally:
        await d.aclose()


@pytest.fixture
def reviewer(db, dispatcher) -> ManualPaymentReviewer:
    return ManualPaymentReviewer(dispatcher=dispatcher)
