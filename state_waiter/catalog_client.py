from typing import Any, Optional

import aiohttp
from loguru import logger
from state_waiter.errors import ResourceNotFoundError
from state_waiter.models import STATUS_UNAVAILABLE, StatusSnapshot


class CatalogClient:
    """Minimal async client for the catalog HTTP API (products and provisioning artifacts)."""

    def __init__(self, base_url: str, session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.logger = logger
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "CatalogClient":
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _request(
        self, method: str, path: str, payload: Optional[dict] = None
    ) -> dict[str, Any]:
        if self._session is None:
            raise RuntimeError("CatalogClient session is not open")

        url = f"{self.base_url}{path}"
        try:
            async with self._session.request(method, url, json=payload) as response:
                if response.status == 404:
                    raise ResourceNotFoundError(f"{method} {path}: resource not found")
                response.raise_for_status()
                if not await response.read():
                    return {}
                return await response.json()
        except aiohttp.ClientResponseError as e:
            self.logger.error(f"HTTP error {e.status} at {url}: {e.message}")
            raise

    async def create_product(self, name: str) -> dict[str, Any]:
        return await self._request("POST", "/products", {"Name": name})

    async def delete_product(self, product_id: str) -> None:
        await self._request("DELETE", f"/products/{product_id}")

    async def describe_product_as_admin(self, product_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/products/{product_id}")

    async def create_provisioning_artifact(
        self, product_id: str, name: str
    ) -> dict[str, Any]:
        return await self._request(
            "POST", f"/products/{product_id}/artifacts", {"Name": name}
        )

    async def delete_provisioning_artifact(
        self, product_id: str, artifact_id: str
    ) -> None:
        await self._request("DELETE", f"/products/{product_id}/artifacts/{artifact_id}")

    async def describe_provisioning_artifact(
        self, product_id: str, artifact_id: str
    ) -> dict[str, Any]:
        return await self._request(
            "GET", f"/products/{product_id}/artifacts/{artifact_id}"
        )


def product_status(client: CatalogClient, product_id: str):
    """Build a fetch function reporting the lifecycle state of a product."""

    async def fetch() -> StatusSnapshot:
        output = await client.describe_product_as_admin(product_id)
        detail = output.get("ProductViewDetail")
        if not detail:
            return StatusSnapshot(state=STATUS_UNAVAILABLE, payload=output)
        return StatusSnapshot(state=detail["Status"], payload=output)

    return fetch


def provisioning_artifact_status(
    client: CatalogClient, product_id: str, artifact_id: str
):
    """Build a fetch function reporting the lifecycle state of a provisioning artifact."""

    async def fetch() -> StatusSnapshot:
        output = await client.describe_provisioning_artifact(product_id, artifact_id)
        if not output.get("ProvisioningArtifactDetail"):
            return StatusSnapshot(state=STATUS_UNAVAILABLE, payload=output)
        return StatusSnapshot(state=output["Status"], payload=output)

    return fetch
