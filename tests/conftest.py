import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vread.database import Base, get_session
from vread.app import create_app
from vread.id import make_book_id, make_slug
from vread.models import Book
from vread.services.refresh import RetryPolicy
import vread.models  # noqa: F401

TEST_DB_URL = "sqlite+aiosqlite://"  # in-memory

engine = create_async_engine(TEST_DB_URL, echo=False)
TestSession = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

USER = "reader-1"
OTHER_USER = "reader-2"


@pytest.fixture(autouse=True)
async def setup_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def session():
    async with TestSession() as s:
        yield s


async def _no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def app():
    app = create_app(
        session_factory=TestSession,
        policy=RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.05),
        sleep=_no_sleep,
    )

    async def override_session():
        async with TestSession() as s:
            yield s

    app.dependency_overrides[get_session] = override_session
    return app


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers={"X-User-Id": USER}
    ) as c:
        yield c
    await app.state.sessions.aclose()


@pytest.fixture
def sessions(app):
    return app.state.sessions


@pytest.fixture
def make_book(session):
    """Insert a book directly and return it."""

    async def _make(title="Dune", author="Frank Herbert", **fields):
        book = Book(id=make_book_id(title, author), slug=make_slug(title), title=title, author=author, **fields)
        session.add(book)
        await session.commit()
        return book

    return _make
