"""Polling award worker.

Stands in for the submission-updated trigger when the ledgers run outside
Cloud Functions: every poll it applies the awards of passing submissions
that have not been rewarded yet.
"""

import logging
import time
from collections.abc import Callable

from .awards import AwardResult, RewardLedger

logger = logging.getLogger(__name__)


def poll_awards_once(rewards: RewardLedger) -> list[AwardResult]:
    """Apply every pending award once and return what was applied."""
    results = rewards.apply_pending_awards()
    applied = [result for result in results if result.applied]
    if applied:
        logger.info("Applied %d chore awards", len(applied))
    else:
        logger.debug("No pending chore awards")
    return applied


def run_award_loop(
    rewards: RewardLedger,
    poll_interval_seconds: int = 30,
    should_stop: Callable[[], bool] = lambda: False,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Poll for pending awards until interrupted or ``should_stop`` is true."""
    logger.info("Starting award worker (poll=%ds)", poll_interval_seconds)
    while not should_stop():
        try:
            poll_awards_once(rewards)
        except KeyboardInterrupt:
            logger.info("Award worker interrupted")
            break
        except Exception:
            logger.exception("Error in award worker poll")

        sleep(poll_interval_seconds)
