"""Test configuration and fixtures."""

import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from admissions.clients.erp import ErpClient
from admissions.core.context import AppContext, BranchType
from admissions.core.database import Base, get_db
from admissions.services.branches import CollegeAdapter, SchoolAdapter
from admissions.services.cache import CacheSynchronizer, QueryCache
from admissions.services.enrollment import EnrollmentPanel
from admissions.services.receipts import ReceiptStore
from main import app, attach_state
from tests.erp_stub import (
    ERP_BASE_URL,
    ErpStore,
    StubTransport,
    make_college_reservation,
    make_school_reservation,
)

# Journal goes to a throwaway SQLite file; NullPool opens a fresh connection per session
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'admissions_desk_test.db'}"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=NullPool,
)
test_session_maker = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# No waiting between confirmation re-fetches in tests
TEST_REFETCH_DELAYS = [0, 0, 0]


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    """Override database dependency for tests."""
    async with test_session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def setup_database() -> AsyncGenerator[None, None]:
    """Create journal tables before each test that needs them."""
    app.dependency_overrides[get_db] = override_get_db

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    app.dependency_overrides.pop(get_db, None)


@pytest_asyncio.fixture
async def db(setup_database: None) -> AsyncGenerator[AsyncSession, None]:
    """Get database session for tests."""
    async with test_session_maker() as session:
        yield session


@pytest.fixture
def erp() -> ErpStore:
    """Fake ERP seeded with one school and one college reservation."""
    store = ErpStore()
    store.add("school", make_school_reservation(1))
    store.add("college", make_college_reservation(1, student_name="Asha Rao"))
    return store


@pytest_asyncio.fixture
async def erp_http(erp: ErpStore) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client pointed at the fake ERP."""
    async with AsyncClient(transport=StubTransport(erp), base_url=ERP_BASE_URL) as http:
        yield http


@pytest.fixture
def school_context() -> AppContext:
    return AppContext(
        branch_type=BranchType.SCHOOL,
        branch_id=1,
        academic_year_id=2024,
        user_name="desk",
        access_token="desk-token",
    )


@pytest.fixture
def college_context(school_context: AppContext) -> AppContext:
    return school_context.with_branch(BranchType.COLLEGE, 2)


@pytest.fixture
def school_adapter(erp_http: AsyncClient, school_context: AppContext) -> SchoolAdapter:
    return SchoolAdapter(ErpClient(erp_http, school_context))


@pytest.fixture
def college_adapter(erp_http: AsyncClient, college_context: AppContext) -> CollegeAdapter:
    return CollegeAdapter(ErpClient(erp_http, college_context))


@pytest.fixture
def query_cache() -> QueryCache:
    return QueryCache()


@pytest.fixture
def receipts() -> ReceiptStore:
    return ReceiptStore()


@pytest.fixture
def synchronizer(query_cache: QueryCache) -> CacheSynchronizer:
    return CacheSynchronizer(query_cache, delays=TEST_REFETCH_DELAYS)


@pytest_asyncio.fixture
async def school_panel(
    school_adapter: SchoolAdapter,
    synchronizer: CacheSynchronizer,
    receipts: ReceiptStore,
) -> EnrollmentPanel:
    """Panel showing school reservation 1."""
    panel = EnrollmentPanel(school_adapter, synchronizer, receipts)
    await panel.load(1)
    return panel


@pytest_asyncio.fixture
async def college_panel(
    college_adapter: CollegeAdapter,
    synchronizer: CacheSynchronizer,
    receipts: ReceiptStore,
) -> EnrollmentPanel:
    """Panel showing college reservation 1."""
    panel = EnrollmentPanel(college_adapter, synchronizer, receipts)
    await panel.load(1)
    return panel


@pytest_asyncio.fixture
async def client(setup_database: None, erp_http: AsyncClient) -> AsyncGenerator[AsyncClient, None]:
    """Get async HTTP client; app state is wired to the fake ERP."""
    attach_state(app, erp_http)
    app.state.panels.refetch_delays = TEST_REFETCH_DELAYS
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.state.panels.close_all()


def branch_header(branch_type: BranchType = BranchType.SCHOOL) -> dict[str, str]:
    """Session headers for the desk API."""
    return {
        "X-Branch-Type": branch_type.value,
        "X-Branch-Id": "1",
        "X-Academic-Year-Id": "2024",
        "Authorization": "Bearer desk-token",
    }


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now
