import sys
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

import recharge_api.models  # noqa: E402,F401
from recharge_api.app import create_app  # noqa: E402
from recharge_api.db.base import Base  # noqa: E402
from recharge_api.db.session import enable_sqlite_write_serialization, get_session  # noqa: E402
from recharge_api.models.plan import Plan  # noqa: E402
from recharge_api.observability.reminders import get_reminder_store  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database so concurrent sessions use separate connections."""

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'recharge.db'}", future=True)
    enable_sqlite_write_serialization(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_plan():
    async def _make_plan(
        session_factory,
        *,
        name: str = "Monthly Recharge",
        value: str = "29.90",
        validity_days: int = 30,
        app_name: str | None = "Recharge App",
    ) -> Plan:
        async with session_factory() as session:
            plan = Plan(
                name=name,
                value=Decimal(value),
                validity_days=validity_days,
                app_name=app_name,
            )
            session.add(plan)
            await session.commit()
            await session.refresh(plan)
            return plan

    return _make_plan


@pytest.fixture(autouse=True)
def reset_reminder_store():
    get_reminder_store().reset()
    yield
