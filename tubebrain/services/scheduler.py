"""
Periodic harvest loop.
"""
from __future__ import annotations

import asyncio
import logging

from .harvester import HarvestInProgressError, HarvestOrchestrator

logger = logging.getLogger(__name__)


async def harvest_loop(orchestrator: HarvestOrchestrator, interval: float, run_immediately: bool = True):
    """
    Run one cycle, wait ``interval`` seconds, repeat until cancelled.

    A cycle (persistence included) always finishes before the next sleep
    starts. Cycle errors are logged and the loop keeps going; the next
    tick is the retry.
    """
    if not run_immediately:
        await asyncio.sleep(interval)
    while True:
        try:
            report = await orchestrator.run_cycle()
            logger.info(
                f"[Scheduler] Cycle done: {len(report.harvested)} videos, "
                f"{report.snippets_fetched} comments"
            )
        except HarvestInProgressError:
            logger.info("[Scheduler] Previous cycle still running, skipping tick")
        except Exception as e:
            logger.error(f"[Scheduler] Harvest cycle failed: {e}", exc_info=True)
        await asyncio.sleep(interval)
