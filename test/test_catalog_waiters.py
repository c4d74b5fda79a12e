import asyncio
from typing import AsyncGenerator

import aiohttp
import pytest
import pytest_asyncio
from catalog_server import CatalogServer
from state_waiter.catalog_client import CatalogClient, product_status
from state_waiter.catalog_waiters import (
    STATUS_CREATED,
    product_deleted,
    product_ready,
    provisioning_artifact_deleted,
    provisioning_artifact_ready,
)
from state_waiter.errors import (
    FetchFailedError,
    ResourceNotFoundError,
    TimeoutExceededError,
    UnexpectedStateError,
)
from state_waiter.models import STATUS_UNAVAILABLE, StatusPollingConfig

BASE_URL_TEMPLATE = "http://localhost:{}"


@pytest_asyncio.fixture
async def server(
    unused_tcp_port_factory,
) -> AsyncGenerator[tuple[CatalogServer, int], None]:
    """Start and yield a test CatalogServer instance on a random port."""
    port = unused_tcp_port_factory()
    server_instance = CatalogServer(creation_time=0.5, deletion_time=0.5)
    await server_instance.start(port=port)
    try:
        yield server_instance, port
    finally:
        await server_instance.stop()


@pytest_asyncio.fixture
async def client(server) -> AsyncGenerator[CatalogClient, None]:
    _, port = server
    async with CatalogClient(BASE_URL_TEMPLATE.format(port)) as catalog_client:
        yield catalog_client


@pytest.fixture
def polling() -> StatusPollingConfig:
    """Fast polling for tests."""
    return StatusPollingConfig(initial_delay=0.1, backoff_factor=1.0, jitter=False)


async def _create_product(client: CatalogClient) -> str:
    output = await client.create_product("analytics-stack")
    return output["ProductViewDetail"]["ProductViewSummary"]["ProductId"]


@pytest.mark.asyncio
async def test_product_ready(client, polling):
    product_id = await _create_product(client)

    output = await product_ready(client, product_id, timeout=5.0, polling=polling)

    assert output["ProductViewDetail"]["Status"] == STATUS_CREATED
    assert output["ProductViewDetail"]["ProductViewSummary"]["ProductId"] == product_id


@pytest.mark.asyncio
async def test_product_ready_accepts_documented_status(server, client, polling):
    server_instance, _ = server
    server_instance.ready_status = "AVAILABLE"
    product_id = await _create_product(client)

    output = await product_ready(client, product_id, timeout=5.0, polling=polling)

    assert output["ProductViewDetail"]["Status"] == "AVAILABLE"


@pytest.mark.asyncio
async def test_product_ready_tolerates_propagation_delay(server, client, polling):
    server_instance, _ = server
    server_instance.propagation_delay = 0.3
    product_id = await _create_product(client)

    snapshot = await product_status(client, product_id)()
    assert snapshot.state == STATUS_UNAVAILABLE

    output = await product_ready(client, product_id, timeout=5.0, polling=polling)
    assert output["ProductViewDetail"]["Status"] == STATUS_CREATED


@pytest.mark.asyncio
async def test_product_creation_failure(server, client, polling):
    server_instance, _ = server
    server_instance.fail_creation = True
    product_id = await _create_product(client)

    with pytest.raises(UnexpectedStateError) as exc_info:
        await product_ready(client, product_id, timeout=5.0, polling=polling)

    assert exc_info.value.state == "FAILED"


@pytest.mark.asyncio
async def test_product_ready_timeout(server, client, polling):
    server_instance, _ = server
    server_instance.creation_time = 30.0
    product_id = await _create_product(client)

    with pytest.raises(TimeoutExceededError) as exc_info:
        await product_ready(client, product_id, timeout=0.5, polling=polling)

    assert exc_info.value.last_state == "CREATING"


@pytest.mark.asyncio
async def test_product_deleted(client, polling):
    product_id = await _create_product(client)
    await product_ready(client, product_id, timeout=5.0, polling=polling)

    await client.delete_product(product_id)
    result = await product_deleted(client, product_id, timeout=5.0, polling=polling)

    assert result is None
    with pytest.raises(ResourceNotFoundError):
        await client.describe_product_as_admin(product_id)


@pytest.mark.asyncio
async def test_product_deleted_when_never_existed(client, polling):
    await product_deleted(client, "prod-missing", timeout=1.0, polling=polling)


@pytest.mark.asyncio
async def test_provisioning_artifact_lifecycle(client, polling):
    product_id = await _create_product(client)
    await product_ready(client, product_id, timeout=5.0, polling=polling)

    created = await client.create_provisioning_artifact(product_id, "v1")
    artifact_id = created["ProvisioningArtifactDetail"]["Id"]

    output = await provisioning_artifact_ready(
        client, artifact_id, product_id, timeout=5.0, polling=polling
    )
    assert output["Status"] == STATUS_CREATED
    assert output["ProvisioningArtifactDetail"]["Name"] == "v1"

    await client.delete_provisioning_artifact(product_id, artifact_id)
    await provisioning_artifact_deleted(
        client, artifact_id, product_id, timeout=5.0, polling=polling
    )


@pytest.mark.asyncio
async def test_server_unavailable(polling):
    """Connection errors are not retried."""
    async with CatalogClient("http://localhost:9999") as catalog_client:  # Invalid port
        with pytest.raises(FetchFailedError) as exc_info:
            await product_ready(
                catalog_client, "prod-any", timeout=5.0, polling=polling
            )

    assert isinstance(exc_info.value.error, aiohttp.ClientConnectionError)


@pytest.mark.asyncio
async def test_multiple_waits(client, polling):
    """Several resources waited on concurrently."""
    product_ids = [await _create_product(client) for _ in range(3)]

    results = await asyncio.gather(
        *[
            product_ready(client, product_id, timeout=5.0, polling=polling)
            for product_id in product_ids
        ]
    )

    returned_ids = [
        r["ProductViewDetail"]["ProductViewSummary"]["ProductId"] for r in results
    ]
    assert returned_ids == product_ids


@pytest.mark.asyncio
async def test_server_error_is_a_fetch_error(server, client, polling):
    """Non-404 HTTP errors stop the wait instead of being polled through."""
    server_instance, _ = server
    product_id = await _create_product(client)
    server_instance.error_status = 500

    with pytest.raises(FetchFailedError) as exc_info:
        await product_ready(client, product_id, timeout=5.0, polling=polling)

    assert isinstance(exc_info.value.error, aiohttp.ClientResponseError)
    assert exc_info.value.error.status == 500


@pytest.mark.asyncio
async def test_empty_describe_body_is_unavailable(server, client):
    server_instance, _ = server
    server_instance.propagation_delay = 5.0
    product_id = await _create_product(client)

    assert await client.describe_product_as_admin(product_id) == {}
    snapshot = await product_status(client, product_id)()
    assert snapshot.state == STATUS_UNAVAILABLE
    assert snapshot.payload == {}


@pytest.mark.asyncio
async def test_product_delete_removes_its_artifacts(client, polling):
    product_id = await _create_product(client)
    await product_ready(client, product_id, timeout=5.0, polling=polling)
    created = await client.create_provisioning_artifact(product_id, "v1")
    artifact_id = created["ProvisioningArtifactDetail"]["Id"]

    await client.delete_product(product_id)
    await provisioning_artifact_deleted(
        client, artifact_id, product_id, timeout=5.0, polling=polling
    )

    with pytest.raises(ResourceNotFoundError):
        await client.describe_provisioning_artifact(product_id, artifact_id)


@pytest.mark.asyncio
async def test_repeated_delete_does_not_restart_deletion(server, client, polling):
    server_instance, _ = server
    product_id = await _create_product(client)
    await product_ready(client, product_id, timeout=5.0, polling=polling)

    await client.delete_product(product_id)
    deleted_at = server_instance.products[product_id].deleted_at
    await asyncio.sleep(0.1)
    await client.delete_product(product_id)

    assert server_instance.products[product_id].deleted_at == deleted_at
    await product_deleted(client, product_id, timeout=5.0, polling=polling)
