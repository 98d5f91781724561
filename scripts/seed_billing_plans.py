#!/usr/bin/env python
"""Script to seed the default billing plans.

This script:
1. Checks whether the plans collection already holds any plan
2. If it is empty, inserts the Free Trial and Standard plans

Usage:
    python scripts/seed_billing_plans.py

Requirements:
    - SUPABASE_URL and SUPABASE_SECRET_KEY environment variables must be set

Note:
    - Running it again after plans exist changes nothing
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import get_settings
from src.services.plan_service import PlanService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main() -> int:
    settings = get_settings()
    logger.info("Seeding billing plans for %s (%s)", settings.app_name, settings.app_env)

    created = await PlanService().seed_default_plans()
    if not created:
        logger.info("Plans already present, nothing seeded")
        return 0

    for plan in created:
        logger.info("Created plan %s: %s %s/%s", plan.id, plan.name, plan.price, plan.billing_cycle.value)
    logger.info("Seeded %d plans", len(created))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
