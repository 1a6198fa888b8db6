"""
CampusPerks - Test Configuration and Fixtures
"""
import os
import asyncio
from typing import AsyncGenerator, Callable, List, Optional
import pytest
from fastapi import WebSocketDisconnect
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from faker import Faker

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test.db'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['CORS_ORIGIN'] = 'http://localhost:5173'
os.environ['LOG_LEVEL'] = 'WARNING'

from app.main import app
from app.core.database import Base, get_db
from app.core.security import get_password_hash, create_access_token
from app.models.account import AccountRole, ApprovalStatus
from app.services.account_store import AccountStore
from app.services.connection_registry import Connection, ConnectionRegistry
from app.services.fanout import EventFanout
from app.services.realtime_gateway import RealtimeGateway

fake = Faker()

DEFAULT_PASSWORD = 'password123'

# Test database setup
TEST_DATABASE_URL = 'sqlite+aiosqlite:///./test.db'
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False
)


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry(queue_size=20)


@pytest.fixture
def fanout(registry: ConnectionRegistry) -> EventFanout:
    return EventFanout(registry)


@pytest.fixture
def gateway(registry: ConnectionRegistry, fanout: EventFanout) -> RealtimeGateway:
    return RealtimeGateway(registry, fanout, session_factory=TestSessionLocal, heartbeat_seconds=5)


@pytest.fixture
async def client(
    db_session: AsyncSession,
    registry: ConnectionRegistry,
    fanout: EventFanout,
    gateway: RealtimeGateway,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and realtime overrides"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    previous = (
        app.state.connection_registry,
        app.state.event_fanout,
        app.state.realtime_gateway,
    )
    app.state.connection_registry = registry
    app.state.event_fanout = fanout
    app.state.realtime_gateway = gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()
    (
        app.state.connection_registry,
        app.state.event_fanout,
        app.state.realtime_gateway,
    ) = previous


@pytest.fixture
def make_account(db_session: AsyncSession) -> Callable:
    """Factory: ``await make_account(role, **overrides)``"""
    async def _make(role: AccountRole, **overrides):
        fields = {
            'name': fake.name(),
            'email': fake.unique.email(),
            'hashed_password': get_password_hash(overrides.pop('password', DEFAULT_PASSWORD)),
        }
        if role == AccountRole.STUDENT:
            fields['college_name'] = fake.company()
        elif role == AccountRole.VENDOR:
            fields['business_name'] = fake.company()
        fields.update(overrides)
        account = await AccountStore(db_session).create(role, **fields)
        await db_session.commit()
        return account

    return _make


@pytest.fixture
async def student(make_account):
    return await make_account(AccountRole.STUDENT)


@pytest.fixture
async def approved_student(make_account):
    return await make_account(AccountRole.STUDENT, approval_status=ApprovalStatus.APPROVED)


@pytest.fixture
async def vendor(make_account):
    return await make_account(AccountRole.VENDOR)


@pytest.fixture
async def approved_vendor(make_account):
    return await make_account(AccountRole.VENDOR, approval_status=ApprovalStatus.APPROVED)


@pytest.fixture
async def admin(make_account):
    return await make_account(AccountRole.ADMIN, approval_status=ApprovalStatus.APPROVED)


def token_for(account, **extra) -> str:
    token_data = {
        'sub': str(account.id),
        'email': account.email,
        'role': account.role.value,
        **extra,
    }
    return create_access_token(token_data)


def auth_headers_for(account) -> dict:
    """Generate authentication headers for an account"""
    return {'Authorization': f'Bearer {token_for(account)}'}


@pytest.fixture
def admin_headers(admin) -> dict:
    return auth_headers_for(admin)


def join_as(registry: ConnectionRegistry, fanout: EventFanout, account) -> Connection:
    """Register a connection for an account, bypassing the socket handshake"""
    connection = registry.connect()
    rooms = fanout.topology.join_rooms_for(account.role, str(account.id))
    registry.register(connection.connection_id, account.role, str(account.id), rooms)
    return connection


# ==================== Fake socket ====================

DISCONNECT = object()


class FakeWebSocket:
    """Minimal stand-in for a Starlette WebSocket"""

    def __init__(self, headers: Optional[dict] = None):
        self.headers = headers or {}
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: List[dict] = []
        self.accepted = False
        self.closed = None

    async def accept(self):
        self.accepted = True

    async def receive_json(self):
        item = await self.incoming.get()
        if item is DISCONNECT:
            raise WebSocketDisconnect(code=1000)
        if isinstance(item, Exception):
            raise item
        return item

    async def send_json(self, data):
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        self.closed = (code, reason)

    async def wait_for_sent(self, count: int, timeout: float = 2.0) -> List[dict]:
        async def _wait():
            while len(self.sent) < count:
                await asyncio.sleep(0.01)
        await asyncio.wait_for(_wait(), timeout)
        return self.sent


@pytest.fixture
def headers_for() -> Callable:
    return auth_headers_for


@pytest.fixture
def join(registry: ConnectionRegistry, fanout: EventFanout) -> Callable:
    """``join(account)`` registers a live connection for the account"""
    return lambda account: join_as(registry, fanout, account)


@pytest.fixture
def fake_socket() -> Callable:
    return FakeWebSocket


@pytest.fixture
def disconnect():
    return DISCONNECT


@pytest.fixture
def token_factory() -> Callable:
    return token_for
