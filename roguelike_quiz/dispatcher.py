"""
Commands emitted by the session state machine and their asynchronous dispatch.

The state machine never awaits I/O. It appends commands to an outbox and
an outer task hands them to the sinks; sink failures are logged and dropped.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Union

from .models import StageType
from .sinks import ActivitySink, ScorePublisher


@dataclass(frozen=True)
class ActivityLogCommand:
    """Record one answered question."""
    user_id: str
    quiz_id: str
    question_index: int
    answer_data: Dict
    is_correct: bool
    points: int
    time_spent: float
    stage_type: StageType


@dataclass(frozen=True)
class PublishScoreCommand:
    """Publish the final score of a completed run."""
    user_id: str
    quiz_id: str
    score: int


Command = Union[ActivityLogCommand, PublishScoreCommand]


class CommandDispatcher:
    """Delivers commands to the configured sinks, at most once, best effort."""

    def __init__(self, activity_sink: Optional[ActivitySink] = None,
                 score_publisher: Optional[ScorePublisher] = None):
        self.logger = logging.getLogger(__name__)
        self.activity_sink = activity_sink
        self.score_publisher = score_publisher
        self._pending_tasks: Set[asyncio.Task] = set()
        self.failed_count = 0

    async def dispatch(self, command: Command) -> bool:
        """
        Deliver a single command.

        Returns:
            True if the sink accepted it, False if it failed or no sink is set
        """
        try:
            if isinstance(command, ActivityLogCommand):
                if self.activity_sink is None:
                    return False
                await self.activity_sink.record_activity(
                    command.user_id,
                    command.quiz_id,
                    command.question_index,
                    command.answer_data,
                    command.is_correct,
                    command.points,
                    command.time_spent,
                    command.stage_type,
                )
                return True

            if isinstance(command, PublishScoreCommand):
                if self.score_publisher is None:
                    return False
                await self.score_publisher.publish_score(
                    command.user_id, command.quiz_id, command.score
                )
                return True

            self.logger.warning(f"Unknown command type: {type(command).__name__}")
            return False

        except Exception as e:
            self.failed_count += 1
            self.logger.error(
                f"Failed to dispatch {type(command).__name__}: {e}",
                extra={
                    'event_type': 'command_dispatch_failed',
                    'command_type': type(command).__name__,
                    'user_id': command.user_id,
                    'error_message': str(e),
                    'timestamp': time.time()
                }
            )
            return False

    async def dispatch_all(self, commands: Iterable[Command]) -> List[bool]:
        """Deliver commands in order, waiting for each."""
        results = []
        for command in commands:
            results.append(await self.dispatch(command))
        return results

    def dispatch_nowait(self, commands: Iterable[Command]) -> asyncio.Task:
        """Schedule delivery on the running loop and return without waiting."""
        task = asyncio.create_task(self.dispatch_all(list(commands)))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)
        return task

    async def wait_for_pending(self) -> None:
        if self._pending_tasks:
            await asyncio.gather(*self._pending_tasks, return_exceptions=True)
