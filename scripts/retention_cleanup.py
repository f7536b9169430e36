"""Retention cleanup job.

Applies the policy's retention windows once: old login attempts, dormant
unverified devices and long-dead sessions. Schedule it externally (cron,
a Kubernetes CronJob).

The store comes from LOGINSHIELD_STORE_FACTORY ("module:callable"); the
job refuses to run without it. Callers that already hold the production
store can await cleanup(store) directly.
"""

import asyncio
import sys
from typing import Dict, Optional

from loginshield.common.config import get_config
from loginshield.common.logging import configure_logging
from loginshield.maintenance import run_retention_cleanup
from loginshield.orchestration import create_engine
from loginshield.storage.base import DocumentStore


async def cleanup(store: Optional[DocumentStore] = None) -> Dict[str, int]:
    """Run every retention window against ``store``, or the configured store."""
    engine = create_engine(store=store)
    return await run_retention_cleanup(
        engine.attempts,
        engine.devices,
        engine.sessions,
        engine.policy.retention,
    )


def main() -> int:
    config = get_config()
    configure_logging(config.log_level.value)

    if not config.store_factory:
        print("LOGINSHIELD_STORE_FACTORY is not set; refusing to clean an empty in-memory store", file=sys.stderr)
        return 1

    print("\n=== Retention Cleanup ===\n")
    deleted = asyncio.run(cleanup())
    for collection, count in deleted.items():
        print(f"  {collection}: {count} removed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
