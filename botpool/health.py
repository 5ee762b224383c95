"""Bot health tracking: failure counting, deactivation and probation."""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Any

from common.constants import BOT_FAILURE_THRESHOLD, BOT_RECOVERY_WINDOW_SECONDS
from common.logging_config import get_logger

logger = get_logger(__name__)


class BotState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PROBATION = "probation"


@dataclass
class BotHealth:
    """Mutable health record for one bot. Owned by BotHealthRegistry."""
    bot_id: str
    name: str
    active: bool = True
    consecutive_failures: int = 0
    last_failure_time: Optional[float] = None
    recovery_deadline: Optional[float] = None
    probation_in_flight: bool = False


class BotHealthRegistry:
    """
    Authoritative health state for every bot in the pool.

    A bot is deactivated after ``failure_threshold`` consecutive failures and
    stays out of rotation until its recovery deadline passes. It then gets a
    single probation attempt: success restores it, failure deactivates it
    again with a fresh deadline.

    The registry never raises on reported outcomes. All mutations happen
    under one lock, so it is safe to share between tasks and threads.
    """

    def __init__(
        self,
        bots: Iterable[Any],
        failure_threshold: int = BOT_FAILURE_THRESHOLD,
        recovery_window: float = BOT_RECOVERY_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            bots: Objects with ``bot_id`` and ``name`` attributes, in rotation order
            failure_threshold: Consecutive failures before deactivation (default: 5)
            recovery_window: Seconds a deactivated bot stays out of rotation (default: 300)
            clock: Time source, injectable for tests
        """
        self.failure_threshold = failure_threshold
        self.recovery_window = recovery_window
        self._clock = clock
        self._lock = threading.Lock()
        self._health: Dict[str, BotHealth] = {
            bot.bot_id: BotHealth(bot_id=bot.bot_id, name=bot.name) for bot in bots
        }

    def record_success(self, bot_id: str) -> None:
        """Reset the failure counter and return the bot to active rotation."""
        with self._lock:
            health = self._health.get(bot_id)
            if health is None:
                logger.warning(f"Ignoring success for unknown bot {bot_id}")
                return

            if not health.active:
                logger.info(f"Bot {bot_id} passed probation, restored to active rotation")

            health.consecutive_failures = 0
            health.active = True
            health.recovery_deadline = None
            health.probation_in_flight = False

    def record_failure(
        self,
        bot_id: str,
        is_rate_limit: bool = False,
        retry_after: Optional[float] = None
    ) -> None:
        """
        Count a failure and deactivate the bot once the threshold is reached.

        Args:
            bot_id: Bot that failed
            is_rate_limit: Whether the failure was a rate-limit response
            retry_after: Backend-provided wait in seconds for rate-limit failures
        """
        with self._lock:
            health = self._health.get(bot_id)
            if health is None:
                logger.warning(f"Ignoring failure for unknown bot {bot_id}")
                return

            now = self._clock()
            was_on_probation = health.probation_in_flight

            health.consecutive_failures += 1
            health.last_failure_time = now
            health.probation_in_flight = False

            if was_on_probation or health.consecutive_failures >= self.failure_threshold:
                if is_rate_limit and retry_after:
                    window = float(retry_after)
                else:
                    window = self.recovery_window

                health.active = False
                health.recovery_deadline = now + window
                logger.warning(
                    f"Bot {bot_id} deactivated after {health.consecutive_failures} consecutive failure(s) "
                    f"[probation={was_on_probation}] [recovery_in={window:.0f}s]"
                )
            else:
                logger.info(
                    f"Bot {bot_id} failure recorded "
                    f"({health.consecutive_failures}/{self.failure_threshold})"
                )

    def state_of(self, bot_id: str) -> BotState:
        """Current state of a bot. Unknown ids report INACTIVE."""
        with self._lock:
            health = self._health.get(bot_id)
            if health is None:
                return BotState.INACTIVE
            return self._state(health, self._clock())

    def list_healthy(self) -> List[str]:
        """
        Ids of bots that may be selected, in configuration order.

        Includes active bots and inactive bots whose recovery deadline has
        passed and whose probation attempt has not been handed out yet.
        """
        with self._lock:
            now = self._clock()
            return [
                bot_id for bot_id, health in self._health.items()
                if not health.probation_in_flight
                and self._state(health, now) != BotState.INACTIVE
            ]

    def begin_probation(self, bot_id: str) -> bool:
        """
        Claim the single probation attempt for a recovering bot.

        Returns:
            True if the bot was a probation candidate and is now in flight
        """
        with self._lock:
            health = self._health.get(bot_id)
            if health is None or health.probation_in_flight:
                return False
            if self._state(health, self._clock()) != BotState.PROBATION:
                return False
            health.probation_in_flight = True
            logger.info(f"Bot {bot_id} recovery deadline passed, starting probation attempt")
            return True

    def release_probation(self, bot_id: str) -> None:
        """
        Give back a probation claim whose attempt ended without an outcome.

        The bot keeps its failure count and becomes a probation candidate
        again. Does nothing when no probation attempt is in flight.
        """
        with self._lock:
            health = self._health.get(bot_id)
            if health is None or not health.probation_in_flight:
                return
            health.probation_in_flight = False
            logger.info(f"Bot {bot_id} probation attempt abandoned, candidate again")

    def get_status(self) -> List[Dict[str, Any]]:
        """Read-only snapshot for ops endpoints."""
        with self._lock:
            return [
                {
                    "id": health.bot_id,
                    "name": health.name,
                    "active": health.active,
                    "failures": health.consecutive_failures,
                }
                for health in self._health.values()
            ]

    def _state(self, health: BotHealth, now: float) -> BotState:
        if health.active:
            return BotState.ACTIVE
        if health.probation_in_flight:
            return BotState.PROBATION
        if health.recovery_deadline is not None and now >= health.recovery_deadline:
            return BotState.PROBATION
        return BotState.INACTIVE
