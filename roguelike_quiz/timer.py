"""
Countdown timers for roguelike stages.

Timers are advanced in discrete ticks so the state machines that own them
stay synchronous; ``start_countdown`` drives the same ticks from an asyncio
loop when a run is played live.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.1


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_created(owner_id: str, duration: float) -> None:
        logger.debug(
            f"Timer lifecycle: CREATED - Owner {owner_id}, Duration {duration}s",
            extra={
                'event_type': 'timer_created',
                'owner_id': owner_id,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(owner_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Owner {owner_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'owner_id': owner_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_completion(owner_id: str, completion_type: str, total_duration: float) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Owner {owner_id}, Type {completion_type}, Duration {total_duration}s",
            extra={
                'event_type': 'timer_completed',
                'owner_id': owner_id,
                'completion_type': completion_type,
                'total_duration': total_duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(owner_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Owner {owner_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'owner_id': owner_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )


class CountdownTimer:
    """A pausable countdown advanced in explicit ticks."""

    def __init__(self, duration: float, owner_id: str = None):
        self._total_duration = duration
        self._remaining_time = float(duration)
        self._is_paused = False
        self._is_cancelled = False
        self._expired = False
        self._owner_id = owner_id
        self._task: Optional[asyncio.Task] = None
        TimerLifecycleLogger.log_timer_created(owner_id, duration)

    def tick(self, seconds: float) -> bool:
        """
        Advance the countdown.

        Args:
            seconds: Elapsed time since the last tick

        Returns:
            True exactly once, on the tick that makes the timer expire
        """
        if self._is_paused or self._is_cancelled or self._expired or seconds <= 0:
            return False

        self._remaining_time = max(0.0, self._remaining_time - seconds)
        if self._remaining_time <= 0:
            self._expired = True
            TimerLifecycleLogger.log_timer_completion(
                self._owner_id, "natural_expiry", self._total_duration
            )
            return True
        return False

    def pause(self) -> None:
        """Pause the countdown; remaining time is kept."""
        if not self._is_paused:
            TimerLifecycleLogger.log_timer_state_transition(
                self._owner_id, "running", "paused", "pause requested"
            )
        self._is_paused = True

    def resume(self) -> None:
        """Resume the countdown."""
        if self._is_paused:
            TimerLifecycleLogger.log_timer_state_transition(
                self._owner_id, "paused", "running", "resume requested"
            )
        self._is_paused = False

    def cancel(self) -> None:
        """Cancel the countdown and any task driving it."""
        TimerLifecycleLogger.log_timer_state_transition(
            self._owner_id,
            "running" if not self._is_paused else "paused",
            "cancelled",
            "cancel requested"
        )
        self._is_cancelled = True
        if self._task and not self._task.done():
            self._task.cancel()

    async def start_countdown(
        self,
        update_callback: Callable[[float], Any],
        completion_callback: Callable[[], Any],
        tick_interval: float = DEFAULT_TICK_INTERVAL,
    ) -> None:
        """
        Drive the timer from the event loop until it expires or is cancelled.

        Args:
            update_callback: Awaited after every tick with the remaining time
            completion_callback: Awaited once on natural expiry
            tick_interval: Seconds between ticks
        """
        self._task = asyncio.current_task()
        try:
            while not self._expired and not self._is_cancelled:
                await asyncio.sleep(tick_interval)
                if self.tick(tick_interval):
                    await completion_callback()
                    return
                if not self._is_paused:
                    await update_callback(self._remaining_time)
        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(
                self._owner_id, "asyncio_cancelled", self._total_duration
            )
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._owner_id, "countdown_execution_error", str(e), "start_countdown"
            )
            raise

    @property
    def is_paused(self) -> bool:
        return self._is_paused

    @property
    def is_cancelled(self) -> bool:
        return self._is_cancelled

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def remaining_time(self) -> float:
        return self._remaining_time

    @property
    def elapsed_time(self) -> float:
        return self._total_duration - self._remaining_time

    @property
    def total_duration(self) -> float:
        return self._total_duration
