"""Integration tests for product API endpoints.

Tests the producer side of the pipeline:
- POST /products persists the product and enqueues one job per source image
- GET /products and GET /products/{id} expose result_images
- DELETE /products/{id} and DELETE /products
- GET /health checks PostgreSQL and Redis
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shopthumbs.app import app
from shopthumbs.queue.messages import decode_job
from shopthumbs.repositories.product import ProductRepository


@pytest_asyncio.fixture
async def test_client(uow_factory, session_factory, redis_client, job_queue, test_settings):
    """Provide AsyncClient with app.state populated as the lifespan would."""
    app.state.settings = test_settings
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.redis = redis_client
    app.state.job_queue = job_queue

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def product_payload(**overrides) -> dict:
    payload = {
        "owner_id": 42,
        "name": "Linen shirt",
        "description": "Relaxed fit",
        "source_images": ["https://x/a.png?x=1", "https://cdn.example.com/b.jpg"],
        "price": 49.9,
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
class TestCreateProduct:
    """Test POST /products."""

    async def test_create_product_enqueues_one_job_per_image(self, test_client, job_queue):
        response = await test_client.post("/products", json=product_payload())

        assert response.status_code == 201
        data = response.json()
        assert data["id"] > 0
        assert data["result_images"] == []
        assert data["source_images"] == ["https://x/a.png?x=1", "https://cdn.example.com/b.jpg"]

        assert (await job_queue.depth())["pending"] == 2
        jobs = [decode_job((await job_queue.receive(timeout=1)).body) for _ in range(2)]
        assert [(j.product_id, j.image_url) for j in jobs] == [
            (data["id"], "https://x/a.png?x=1"),
            (data["id"], "https://cdn.example.com/b.jpg"),
        ]

    async def test_create_product_is_persisted(self, test_client, session):
        response = await test_client.post("/products", json=product_payload())

        product = await ProductRepository(session).get_by_id(response.json()["id"])
        assert product is not None
        assert product.owner_id == 42
        assert product.result_images is None

    async def test_create_product_without_images(self, test_client, job_queue):
        response = await test_client.post("/products", json=product_payload(source_images=[]))

        assert response.status_code == 201
        assert (await job_queue.depth())["pending"] == 0

    async def test_url_payload_format(self, test_client, job_queue, test_settings):
        test_settings.queue_payload_format = "url"

        response = await test_client.post(
            "/products", json=product_payload(source_images=["https://x/a.png"])
        )

        assert response.status_code == 201
        delivery = await job_queue.receive(timeout=1)
        assert delivery.body == b"https://x/a.png"

    async def test_non_http_image_url_is_rejected(self, test_client, job_queue):
        response = await test_client.post(
            "/products", json=product_payload(source_images=["file:///etc/passwd"])
        )

        assert response.status_code == 422
        assert (await job_queue.depth())["pending"] == 0

    async def test_missing_name_is_rejected(self, test_client):
        payload = product_payload()
        del payload["name"]

        response = await test_client.post("/products", json=payload)
        assert response.status_code == 422

    async def test_queue_failure_returns_500(self, test_client, job_queue):
        async def broken_enqueue_many(bodies):
            raise ConnectionError("redis unavailable")

        job_queue.enqueue_many = broken_enqueue_many

        response = await test_client.post("/products", json=product_payload())

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to enqueue image URL"


@pytest.mark.asyncio
class TestReadAndDeleteProducts:
    """Test GET and DELETE product endpoints."""

    async def test_get_product_shows_result_images(self, test_client, session_factory):
        created = (await test_client.post("/products", json=product_payload())).json()

        async with session_factory() as session:
            await ProductRepository(session).append_result_image(created["id"], "https://dl/L")
            await session.commit()

        response = await test_client.get(f"/products/{created['id']}")

        assert response.status_code == 200
        assert response.json()["result_images"] == ["https://dl/L"]

    async def test_get_missing_product_returns_404(self, test_client):
        response = await test_client.get("/products/123456")
        assert response.status_code == 404

    async def test_list_products_in_creation_order(self, test_client):
        for name in ("First", "Second", "Third"):
            await test_client.post("/products", json=product_payload(name=name))

        response = await test_client.get("/products", params={"limit": 2, "offset": 1})

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["Second", "Third"]

    async def test_delete_product(self, test_client):
        created = (await test_client.post("/products", json=product_payload())).json()

        response = await test_client.delete(f"/products/{created['id']}")
        assert response.status_code == 200

        assert (await test_client.get(f"/products/{created['id']}")).status_code == 404
        assert (await test_client.delete(f"/products/{created['id']}")).status_code == 404

    async def test_delete_all_products(self, test_client):
        for name in ("First", "Second"):
            await test_client.post("/products", json=product_payload(name=name))

        response = await test_client.delete("/products")

        assert response.status_code == 200
        assert (await test_client.get("/products")).json() == []


@pytest.mark.asyncio
class TestHealth:
    async def test_health_reports_queue_depth(self, test_client):
        await test_client.post("/products", json=product_payload())

        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "queue": {"pending": 2, "processing": 0, "dead": 0},
        }

    async def test_health_unhealthy_when_redis_down(self, test_client):
        class DownRedis:
            async def ping(self):
                raise ConnectionError("Connection refused")

        app.state.redis = DownRedis()

        response = await test_client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["error"]["type"] == "ConnectionError"
