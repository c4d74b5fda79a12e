import asyncio

from catalog_server import CatalogServer
from state_waiter.catalog_client import CatalogClient
from state_waiter.catalog_waiters import product_deleted, product_ready
from state_waiter.errors import TimeoutExceededError, UnexpectedStateError
from state_waiter.models import StatusPollingConfig


async def main():
    PORT = 8000
    server = CatalogServer(creation_time=5.0, deletion_time=3.0, propagation_delay=1.0)
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    polling = StatusPollingConfig(initial_delay=0.5, max_delay=4.0, backoff_factor=2.0)

    async with CatalogClient(f"http://localhost:{PORT}") as client:
        created = await client.create_product("analytics-stack")
        product_id = created["ProductViewDetail"]["ProductViewSummary"]["ProductId"]

        try:
            output = await product_ready(
                client, product_id, timeout=30.0, polling=polling
            )
            print(f"Product ready: {output['ProductViewDetail']['Status']}")

            await client.delete_product(product_id)
            await product_deleted(client, product_id, timeout=30.0, polling=polling)
            print("Product deleted")
        except TimeoutExceededError as e:
            print(f"Still not done, last state {e.last_state}: {e}")
        except UnexpectedStateError as e:
            print(f"Product went to {e.state}: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
