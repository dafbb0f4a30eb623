import socket
from collections.abc import AsyncGenerator, Iterator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from templink.core.config import settings
from templink.models.base import Base

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on the configured port, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex((settings.database_host, settings.database_port))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available. Start database with: docker compose up -d"
        )


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def reset_singletons() -> Iterator[None]:
    """Drop cached issuer and mail transport between tests.

    Yields:
        None (autouse fixture).
    """
    from templink.services.mail_transport import reset_mail_transport
    from templink.services.temporary_link_issuer import reset_link_issuer

    reset_link_issuer()
    reset_mail_transport()
    yield
    reset_link_issuer()
    reset_mail_transport()


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Rate limiting is tested separately; disable for other tests to avoid
    flaky failures from rate limit triggers.

    Yields:
        None (autouse fixture).
    """
    from templink.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled
