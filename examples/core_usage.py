"""
Example usage of the kkv client.

Loads the whole topic into a local dict, keeps it fresh from change
notifications, and writes a value through the proxy.
"""

import asyncio

from loguru import logger

from kkv_client import KafkaKeyValue, PutOptions, update_events


async def main():
    cfg = {
        "cache_host": "http://localhost:8090",
        "pixy_host": "http://localhost:19090",
        "topic_name": "users",
    }
    users: dict[str, dict] = {}

    async with KafkaKeyValue(cfg) as kkv:
        # Bulk catch-up: every current value, one NDJSON record at a time
        n = await kkv.stream_values(lambda record: users.update({record["id"]: record}))
        logger.info(f"Loaded {n} users")

        # Keep the local copy fresh
        kkv.on_update(lambda key, value: users.__setitem__(key, value))

        offset = await kkv.put("u1", {"id": "u1", "name": "Ada"}, PutOptions(n_retries=10))
        logger.info(f"Wrote u1 at offset {offset}")

        # The notification transport (e.g. an HTTP webhook handler) forwards
        # cache events into the process-wide bus
        await update_events().publish(
            {"v": 1, "topic": "users", "offsets": {"0": offset}, "updates": {"u1": {}}}
        )
        await asyncio.sleep(0.1)
        logger.info(f"u1 is now {users.get('u1')}")


if __name__ == "__main__":
    asyncio.run(main())
