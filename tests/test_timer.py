"""
Unit tests for countdown timers and their lifecycle logging.
"""
import asyncio
import unittest
from unittest.mock import AsyncMock, patch

from roguelike_quiz.timer import CountdownTimer, TimerLifecycleLogger


class TestCountdownTimer(unittest.TestCase):
    """Tick-driven timer behaviour."""

    def test_tick_counts_down(self):
        """Test remaining and elapsed time after ticks."""
        timer = CountdownTimer(10, owner_id="node-1")
        self.assertFalse(timer.tick(3))
        self.assertEqual(timer.remaining_time, 7)
        self.assertEqual(timer.elapsed_time, 3)
        self.assertEqual(timer.total_duration, 10)

    def test_expiry_reported_once(self):
        """Test that expiry is reported on exactly one tick."""
        timer = CountdownTimer(2)
        self.assertFalse(timer.tick(1))
        self.assertTrue(timer.tick(1.5))
        self.assertTrue(timer.expired)
        self.assertEqual(timer.remaining_time, 0)
        self.assertFalse(timer.tick(1))

    def test_pause_keeps_remaining_time(self):
        """Test that paused timers ignore ticks and resume where they left off."""
        timer = CountdownTimer(10)
        timer.tick(4)
        timer.pause()
        self.assertTrue(timer.is_paused)
        timer.tick(5)
        self.assertEqual(timer.remaining_time, 6)

        timer.resume()
        self.assertFalse(timer.is_paused)
        timer.tick(1)
        self.assertEqual(timer.remaining_time, 5)

    def test_cancelled_timer_never_expires(self):
        """Test that cancellation stops the countdown."""
        timer = CountdownTimer(1)
        timer.cancel()
        self.assertTrue(timer.is_cancelled)
        self.assertFalse(timer.tick(5))
        self.assertFalse(timer.expired)

    def test_lifecycle_events_logged(self):
        """Test that creation and transitions go through the lifecycle logger."""
        with patch.object(TimerLifecycleLogger, 'log_timer_created') as created, \
                patch.object(TimerLifecycleLogger, 'log_timer_state_transition') as transition:
            timer = CountdownTimer(5, owner_id="elite-q0")
            timer.pause()
            timer.resume()

        created.assert_called_once_with("elite-q0", 5)
        self.assertEqual(transition.call_count, 2)
        self.assertEqual(transition.call_args_list[0][0][1:3], ("running", "paused"))


class TestCountdownTimerAsync(unittest.IsolatedAsyncioTestCase):
    """Event-loop driven countdowns."""

    async def test_start_countdown_completes(self):
        """Test that the completion callback fires once on expiry."""
        timer = CountdownTimer(0.05)
        update = AsyncMock()
        complete = AsyncMock()

        await timer.start_countdown(update, complete, tick_interval=0.01)

        complete.assert_awaited_once()
        self.assertTrue(timer.expired)
        self.assertGreaterEqual(update.await_count, 1)

    async def test_cancel_stops_countdown_task(self):
        """Test that cancelling the timer cancels the task driving it."""
        timer = CountdownTimer(10)
        complete = AsyncMock()
        task = asyncio.create_task(timer.start_countdown(AsyncMock(), complete, tick_interval=0.01))
        await asyncio.sleep(0.03)

        timer.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        complete.assert_not_awaited()
        self.assertTrue(timer.is_cancelled)


if __name__ == '__main__':
    unittest.main()
