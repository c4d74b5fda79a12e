"""Waiters for catalog products and provisioning artifacts."""

from typing import Any, Optional

from state_waiter.catalog_client import (
    CatalogClient,
    product_status,
    provisioning_artifact_status,
)
from state_waiter.models import (
    STATUS_NOT_FOUND,
    STATUS_UNAVAILABLE,
    StatusPollingConfig,
)
from state_waiter.state_waiter import wait_until_absent, wait_until_ready

PRODUCT_READY_TIMEOUT = 180.0
PRODUCT_DELETE_TIMEOUT = 180.0

PROVISIONING_ARTIFACT_READY_TIMEOUT = 180.0
PROVISIONING_ARTIFACT_DELETED_TIMEOUT = 180.0

STATUS_CREATING = "CREATING"
STATUS_AVAILABLE = "AVAILABLE"
STATUS_FAILED = "FAILED"
# Documented as AVAILABLE, but the API actually reports CREATED
STATUS_CREATED = "CREATED"

READY_PENDING = (STATUS_CREATING, STATUS_NOT_FOUND, STATUS_UNAVAILABLE)
READY_TARGET = (STATUS_AVAILABLE, STATUS_CREATED)
DELETED_PENDING = (
    STATUS_CREATING,
    STATUS_AVAILABLE,
    STATUS_CREATED,
    STATUS_UNAVAILABLE,
)


async def product_ready(
    client: CatalogClient,
    product_id: str,
    timeout: float = PRODUCT_READY_TIMEOUT,
    polling: Optional[StatusPollingConfig] = None,
) -> dict[str, Any]:
    return await wait_until_ready(
        product_status(client, product_id),
        READY_PENDING,
        READY_TARGET,
        timeout,
        polling=polling,
        description=f"product ({product_id})",
    )


async def product_deleted(
    client: CatalogClient,
    product_id: str,
    timeout: float = PRODUCT_DELETE_TIMEOUT,
    polling: Optional[StatusPollingConfig] = None,
) -> None:
    await wait_until_absent(
        product_status(client, product_id),
        DELETED_PENDING,
        timeout,
        polling=polling,
        description=f"product ({product_id})",
    )


async def provisioning_artifact_ready(
    client: CatalogClient,
    artifact_id: str,
    product_id: str,
    timeout: float = PROVISIONING_ARTIFACT_READY_TIMEOUT,
    polling: Optional[StatusPollingConfig] = None,
) -> dict[str, Any]:
    return await wait_until_ready(
        provisioning_artifact_status(client, product_id, artifact_id),
        READY_PENDING,
        READY_TARGET,
        timeout,
        polling=polling,
        description=f"provisioning artifact ({artifact_id})",
    )


async def provisioning_artifact_deleted(
    client: CatalogClient,
    artifact_id: str,
    product_id: str,
    timeout: float = PROVISIONING_ARTIFACT_DELETED_TIMEOUT,
    polling: Optional[StatusPollingConfig] = None,
) -> None:
    await wait_until_absent(
        provisioning_artifact_status(client, product_id, artifact_id),
        DELETED_PENDING,
        timeout,
        polling=polling,
        description=f"provisioning artifact ({artifact_id})",
    )
