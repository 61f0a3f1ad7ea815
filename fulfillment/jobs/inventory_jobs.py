"""
Inventory Jobs

Hourly top-up of low division stock from parent zonal warehouses.
"""

import logging
from typing import Any, Dict

from fulfillment.database import get_db_session
from fulfillment.services.replenishment_service import ReplenishmentService

logger = logging.getLogger(__name__)


async def monitor_division_stock() -> Dict[str, Any]:
    logger.info("Starting division stock monitor...")
    try:
        async with get_db_session() as session:
            result = await ReplenishmentService(session).monitor_and_transfer()

        logger.info(
            f"Division stock monitor completed: {len(result['transfers'])} transfer(s), "
            f"{len(result['skipped'])} skipped"
        )
        return result

    except Exception as e:
        logger.error(f"Division stock monitor failed: {e}")
        raise
