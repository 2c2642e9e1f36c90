# tests/conftest.py

from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.api.main import app as main_app
from src.core import deps
from src.core.context import UserContext
from src.core.permissions import RoleName

from tests.fakes import FakeAudit, make_ctx


@pytest.fixture
def admin_ctx() -> UserContext:
    return make_ctx(RoleName.ADMIN)


@pytest.fixture
def supervisor_ctx() -> UserContext:
    return make_ctx(RoleName.SUPERVISOR)


@pytest.fixture
def inventory_ctx() -> UserContext:
    return make_ctx(RoleName.INVENTORY)


@pytest.fixture
def operator_ctx() -> UserContext:
    return make_ctx(RoleName.OPERATOR)


@pytest.fixture
def audit() -> FakeAudit:
    return FakeAudit()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client bound to the ASGI app. No lifespan events are sent, so startup
    migrations and seeding do not run.
    """
    transport = ASGITransport(app=main_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    main_app.dependency_overrides.clear()


@pytest.fixture
def login_as() -> Callable[[UserContext], None]:
    """
    Replace authentication and the tenant session with fixed values so route
    tests exercise role checks and error mapping without a database.
    """

    def _login(ctx: UserContext) -> None:
        async def _session():
            yield None

        main_app.dependency_overrides[deps.get_user_context] = lambda: ctx
        main_app.dependency_overrides[deps.get_tenant_session] = _session

    return _login
