"""pytest fixtures for shopthumbs tests.

Provides:
- postgres_container: Session-scoped testcontainer PostgreSQL instance with migrations applied
- redis_container: Session-scoped testcontainer Redis instance
- session: Function-scoped database session with table cleanup
- session_factory / uow_factory: Factories bound to the test database
- redis_client / job_queue: Function-scoped queue on a flushed Redis database
- fake_dropbox / dropbox_client / publisher: In-memory Dropbox API behind httpx.MockTransport
- image_server: In-memory image host behind httpx.MockTransport
- make_image: Factory for encoded test images
- pipeline: ImagePipeline wired to all of the above
"""

import json
import os
import subprocess
import sys
from io import BytesIO
from pathlib import Path
from typing import AsyncGenerator

# Settings validation is relaxed for tests; must be set before the app is imported
os.environ.setdefault("APP_ENV", "test")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
import redis.asyncio as redis  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from testcontainers.postgres import PostgresContainer  # noqa: E402
from testcontainers.redis import RedisContainer  # noqa: E402

from shopthumbs.core.config import Settings  # noqa: E402
from shopthumbs.core.database import setup_db_session  # noqa: E402
from shopthumbs.queue.redis_queue import JobQueue  # noqa: E402
from shopthumbs.services.pipeline import ImagePipeline, build_pipeline  # noqa: E402
from shopthumbs.services.storage import DropboxClient, StoragePublisher  # noqa: E402
from shopthumbs.uow import create_uow_factory  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture(scope="session")
def postgres_container():
    """Provide session-scoped PostgreSQL container with migrations applied.

    Migrations are applied using subprocess to avoid asyncio event loop conflicts.
    """
    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="test_shopthumbs",
    ) as container:
        db_url = container.get_connection_url(driver="psycopg")

        env = os.environ.copy()
        env["DATABASE_URL"] = db_url
        env["APP_ENV"] = "test"

        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            env=env,
            cwd=PROJECT_ROOT,
        )

        yield container


@pytest.fixture(scope="session")
def redis_container():
    with RedisContainer(image="redis:7") as container:
        yield container


@pytest.fixture(scope="session")
def redis_url(redis_container) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"


@pytest_asyncio.fixture(scope="function")
async def session(postgres_container) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session with table cleanup.

    Each test gets a fresh session with an empty products table.
    """
    db_url = postgres_container.get_connection_url(driver="psycopg")
    session_factory = setup_db_session(db_url, pool_size=10)

    async with session_factory() as session:
        yield session

        await session.rollback()
        await session.execute(text("DELETE FROM products"))
        await session.commit()

    await session_factory.kw["bind"].dispose()


@pytest.fixture
def session_factory(session: AsyncSession):
    """Session factory bound to the test session's engine."""
    return async_sessionmaker(bind=session.bind, expire_on_commit=False)


@pytest.fixture
def uow_factory(session_factory):
    return create_uow_factory(session_factory)


@pytest_asyncio.fixture(scope="function")
async def redis_client(redis_url) -> AsyncGenerator[redis.Redis, None]:
    """Provide a Redis client on a database that is flushed after each test."""
    client = redis.from_url(redis_url)
    yield client
    await client.flushdb()
    await client.aclose()


@pytest.fixture
def job_queue(redis_client) -> JobQueue:
    return JobQueue(redis_client, name="test_image_queue", max_attempts=3)


@pytest.fixture
def test_settings(postgres_container, redis_url) -> Settings:
    """Settings pointing at the test containers."""
    return Settings(  # type: ignore[call-arg]
        APP_ENV="test",
        DATABASE_URL=postgres_container.get_connection_url(driver="psycopg"),
        REDIS_URL=redis_url,
        QUEUE_NAME="test_image_queue",
        DROPBOX_ACCESS_TOKEN="test-token",
        WORKER_CONCURRENCY=2,
        QUEUE_BLOCK_TIMEOUT_SECONDS=1,
    )


# Dropbox


class FakeDropbox:
    """In-memory Dropbox API v2 (files/upload and sharing endpoints).

    Shared links are minted as opaque https://www.dropbox.com/scl/fi/... URLs.
    The canonical URL (host + path) resolves through get_shared_link_metadata.

    Attributes:
        files: Uploaded content keyed by path
        links: Shared link URL keyed by path
        calls: Endpoint names in call order
        failures: Queued responses per endpoint, returned before normal handling
        hide_links: When True, list/metadata lookups find nothing
    """

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.links: dict[str, str] = {}
        self.calls: list[str] = []
        self.failures: dict[str, list[httpx.Response]] = {}
        self.hide_links = False
        self.tokens: list[str] = []

    def fail_next(
        self, endpoint: str, status_code: int, error_summary: str, tag: str | None = None
    ):
        """Make the next call to `endpoint` return an error response."""
        body: dict = {"error_summary": error_summary}
        if tag is not None:
            body["error"] = {".tag": tag}
        self.failures.setdefault(endpoint, []).append(httpx.Response(status_code, json=body))

    def calls_to(self, endpoint: str) -> int:
        return self.calls.count(endpoint)

    def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.removeprefix("/2/")
        self.calls.append(endpoint)
        self.tokens.append(request.headers.get("authorization", ""))

        queued = self.failures.get(endpoint)
        if queued:
            return queued.pop(0)

        if endpoint == "files/upload":
            arg = json.loads(request.headers["dropbox-api-arg"])
            self.files[arg["path"]] = request.content
            return httpx.Response(
                200,
                json={
                    "name": arg["path"].lstrip("/"),
                    "path_display": arg["path"],
                    "size": len(request.content),
                },
            )

        payload = json.loads(request.content) if request.content else {}

        if endpoint == "sharing/create_shared_link_with_settings":
            path = payload["path"]
            if path in self.links:
                return httpx.Response(
                    409,
                    json={
                        "error_summary": "shared_link_already_exists/metadata/..",
                        "error": {".tag": "shared_link_already_exists"},
                    },
                )
            if path not in self.files:
                return httpx.Response(
                    409,
                    json={"error_summary": "path/not_found/..", "error": {".tag": "path"}},
                )
            url = f"https://www.dropbox.com/scl/fi/{len(self.links) + 1:04d}{path}?dl=0"
            self.links[path] = url
            return httpx.Response(200, json={"url": url, "path_lower": path.lower()})

        if endpoint == "sharing/get_shared_link_metadata":
            for path, url in self.links.items():
                canonical = "https://www.dropbox.com" + path
                if not self.hide_links and payload["url"] in (url, canonical):
                    return httpx.Response(200, json={"url": url, "path_lower": path.lower()})
            return httpx.Response(
                409,
                json={
                    "error_summary": "shared_link_not_found/..",
                    "error": {".tag": "shared_link_not_found"},
                },
            )

        if endpoint == "sharing/list_shared_links":
            path = payload["path"]
            links = []
            if path in self.links and not self.hide_links:
                links.append({"url": self.links[path], "path_lower": path.lower()})
            return httpx.Response(200, json={"links": links, "has_more": False})

        if endpoint == "users/get_current_account":
            return httpx.Response(200, json={"account_id": "dbid:test-account"})

        return httpx.Response(400, json={"error_summary": f"unknown endpoint {endpoint}"})


@pytest.fixture
def fake_dropbox() -> FakeDropbox:
    return FakeDropbox()


@pytest_asyncio.fixture
async def dropbox_client(fake_dropbox) -> AsyncGenerator[DropboxClient, None]:
    client = DropboxClient("test-token", transport=httpx.MockTransport(fake_dropbox.handler))
    yield client
    await client.aclose()


@pytest.fixture
def publisher(dropbox_client) -> StoragePublisher:
    return StoragePublisher(dropbox_client, lookup_strategy="list")


# Source images


class ImageServer:
    """In-memory image host.

    Attributes:
        responses: (status, body, content type) keyed by full URL
        timeouts: URLs that raise httpx.ReadTimeout
        requests: URLs requested, in order
    """

    def __init__(self):
        self.responses: dict[str, tuple[int, bytes, str]] = {}
        self.timeouts: set[str] = set()
        self.requests: list[str] = []

    def add(
        self, url: str, content: bytes, content_type: str = "image/png", status_code: int = 200
    ):
        self.responses[url] = (status_code, content, content_type)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url in self.timeouts:
            raise httpx.ReadTimeout("timed out", request=request)
        if url not in self.responses:
            return httpx.Response(404, text="Not Found", headers={"content-type": "text/plain"})
        status_code, content, content_type = self.responses[url]
        return httpx.Response(status_code, content=content, headers={"content-type": content_type})


@pytest.fixture
def image_server() -> ImageServer:
    return ImageServer()


@pytest.fixture
def make_image():
    """Return a factory producing encoded images of a given format and size."""

    def _make_image(
        fmt: str = "PNG", size: tuple[int, int] = (640, 480), color=(200, 30, 30)
    ) -> bytes:
        buffer = BytesIO()
        Image.new("RGB", size, color).save(buffer, format=fmt)
        return buffer.getvalue()

    return _make_image


@pytest_asyncio.fixture
async def pipeline(
    test_settings, session_factory, fake_dropbox, image_server
) -> AsyncGenerator[ImagePipeline, None]:
    """ImagePipeline wired to the fake Dropbox, the fake image host and the test database."""
    pipeline = build_pipeline(
        test_settings,
        session_factory,
        dropbox_transport=httpx.MockTransport(fake_dropbox.handler),
        fetch_transport=httpx.MockTransport(image_server.handler),
    )
    yield pipeline
    await pipeline.aclose()
