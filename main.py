#!/usr/bin/env python3
"""Main entry point for LoginShield."""

import asyncio

from loginshield.common.config import get_config
from loginshield.common.logging import configure_logging, get_logger
from loginshield.orchestration import create_engine

logger = get_logger(__name__)


async def _bootstrap() -> None:
    config = get_config()
    engine = create_engine(config=config)

    rules_file = config.config_dir / "access_rules.example.yaml"
    if rules_file.exists():
        created = await engine.rules.load_from_yaml(rules_file)
        logger.info(f"Seeded {created} access rules from {rules_file}")

    stats = await engine.rules.statistics()
    logger.info(f"LoginShield initialized in {config.environment.value} mode")
    logger.info(f"Policy version {engine.policy.version}, {stats['active']} active access rules")


def main():
    """Main entry point."""
    configure_logging(get_config().log_level.value)
    asyncio.run(_bootstrap())


if __name__ == "__main__":
    main()
