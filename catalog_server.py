import uuid
from datetime import datetime
from typing import Optional

from aiohttp import web
from loguru import logger


class CatalogResource:
    def __init__(self, resource_id: str, name: str):
        self.resource_id = resource_id
        self.name = name
        self.created_at = datetime.now()
        self.deleted_at: Optional[datetime] = None


class CatalogServer:
    """Fake catalog API whose products and artifacts change state as time passes."""

    def __init__(
        self,
        creation_time: float = 2.0,
        deletion_time: float = 2.0,
        propagation_delay: float = 0.0,
        ready_status: str = "CREATED",
        fail_creation: bool = False,
        error_status: Optional[int] = None,
    ):
        self.creation_time = creation_time
        self.deletion_time = deletion_time
        self.propagation_delay = propagation_delay
        self.ready_status = ready_status
        self.fail_creation = fail_creation
        self.error_status = error_status  # answered by describe calls when set
        self.products: dict[str, CatalogResource] = {}
        self.artifacts: dict[tuple[str, str], CatalogResource] = {}
        self.app = web.Application()
        self.app.router.add_post("/products", self.handle_create_product)
        self.app.router.add_get("/products/{product_id}", self.handle_describe_product)
        self.app.router.add_delete("/products/{product_id}", self.handle_delete_product)
        self.app.router.add_post(
            "/products/{product_id}/artifacts", self.handle_create_artifact
        )
        self.app.router.add_get(
            "/products/{product_id}/artifacts/{artifact_id}",
            self.handle_describe_artifact,
        )
        self.app.router.add_delete(
            "/products/{product_id}/artifacts/{artifact_id}",
            self.handle_delete_artifact,
        )
        self.logger = logger
        self._runner: Optional[web.AppRunner] = None

    def _status(self, resource: CatalogResource) -> Optional[str]:
        """Current lifecycle status, or None once the resource is gone"""
        now = datetime.now()
        if resource.deleted_at is not None:
            if (now - resource.deleted_at).total_seconds() >= self.deletion_time:
                return None
        elapsed = (now - resource.created_at).total_seconds()
        if elapsed < self.creation_time:
            return "CREATING"
        return "FAILED" if self.fail_creation else self.ready_status

    def _propagating(self, resource: CatalogResource) -> bool:
        elapsed = (datetime.now() - resource.created_at).total_seconds()
        return elapsed < self.propagation_delay

    def _internal_failure(self) -> web.Response:
        self.logger.info(f"Returning injected error {self.error_status}")
        return web.json_response(
            {"__type": "InternalFailure", "Message": "Injected failure"},
            status=self.error_status,
        )

    @staticmethod
    def _not_found(message: str) -> web.Response:
        return web.json_response(
            {"__type": "ResourceNotFoundException", "Message": message}, status=404
        )

    def _lookup_product(self, request: web.Request) -> Optional[CatalogResource]:
        product = self.products.get(request.match_info["product_id"])
        if product is None or self._status(product) is None:
            return None
        return product

    def _lookup_artifact(self, request: web.Request) -> Optional[CatalogResource]:
        key = (request.match_info["product_id"], request.match_info["artifact_id"])
        artifact = self.artifacts.get(key)
        if artifact is None or self._status(artifact) is None:
            return None
        return artifact

    async def handle_create_product(self, request: web.Request) -> web.Response:
        body = await request.json()
        product = CatalogResource(f"prod-{uuid.uuid4().hex[:12]}", body["Name"])
        self.products[product.resource_id] = product
        self.logger.info(f"Created product {product.resource_id}")
        return web.json_response(self._product_view(product), status=201)

    async def handle_describe_product(self, request: web.Request) -> web.Response:
        if self.error_status is not None:
            return self._internal_failure()
        product = self._lookup_product(request)
        if product is None:
            self.logger.info(f"Product {request.match_info['product_id']} not found")
            return self._not_found("Product not found")
        if self._propagating(product):
            self.logger.info(f"Product {product.resource_id} not yet describable")
            return web.Response(status=200)
        self.logger.info(
            f"Returning product {product.resource_id} status {self._status(product)}"
        )
        return web.json_response(self._product_view(product))

    async def handle_delete_product(self, request: web.Request) -> web.Response:
        product = self._lookup_product(request)
        if product is None:
            return self._not_found("Product not found")
        if product.deleted_at is None:
            product.deleted_at = datetime.now()
            for (product_id, _), artifact in self.artifacts.items():
                if product_id == product.resource_id and artifact.deleted_at is None:
                    artifact.deleted_at = product.deleted_at
            self.logger.info(f"Deleting product {product.resource_id}")
        return web.Response(status=202)

    async def handle_create_artifact(self, request: web.Request) -> web.Response:
        product = self._lookup_product(request)
        if product is None:
            return self._not_found("Product not found")
        body = await request.json()
        artifact = CatalogResource(f"pa-{uuid.uuid4().hex[:12]}", body["Name"])
        self.artifacts[(product.resource_id, artifact.resource_id)] = artifact
        self.logger.info(
            f"Created provisioning artifact {artifact.resource_id} "
            f"for product {product.resource_id}"
        )
        return web.json_response(self._artifact_view(artifact), status=201)

    async def handle_describe_artifact(self, request: web.Request) -> web.Response:
        if self.error_status is not None:
            return self._internal_failure()
        artifact = self._lookup_artifact(request)
        if artifact is None:
            return self._not_found("Provisioning artifact not found")
        if self._propagating(artifact):
            return web.Response(status=200)
        self.logger.info(
            f"Returning artifact {artifact.resource_id} status {self._status(artifact)}"
        )
        return web.json_response(self._artifact_view(artifact))

    async def handle_delete_artifact(self, request: web.Request) -> web.Response:
        artifact = self._lookup_artifact(request)
        if artifact is None:
            return self._not_found("Provisioning artifact not found")
        if artifact.deleted_at is None:
            artifact.deleted_at = datetime.now()
            self.logger.info(f"Deleting provisioning artifact {artifact.resource_id}")
        return web.Response(status=202)

    def _product_view(self, product: CatalogResource) -> dict:
        return {
            "ProductViewDetail": {
                "ProductViewSummary": {
                    "ProductId": product.resource_id,
                    "Name": product.name,
                },
                "Status": self._status(product),
                "CreatedTime": product.created_at.isoformat(),
            }
        }

    def _artifact_view(self, artifact: CatalogResource) -> dict:
        return {
            "ProvisioningArtifactDetail": {
                "Id": artifact.resource_id,
                "Name": artifact.name,
                "CreatedTime": artifact.created_at.isoformat(),
            },
            "Status": self._status(artifact),
        }

    async def start(self, port: int = 8080) -> web.TCPSite:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "localhost", port)
        await site.start()
        self.logger.info(f"Catalog server started on port {port}")
        return site

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
