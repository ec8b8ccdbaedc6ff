"""
Run controller for roguelike quizzes.
Keeps at most one active run per user and drains each run's commands.
"""
import logging
import random
import time
from typing import Any, Dict, List, Optional

from .config_manager import ConfigManager
from .data_manager import DataManager
from .dispatcher import CommandDispatcher
from .game_session import GameSessionStateMachine
from .map_generator import MapGraphBuilder
from .rewards import RewardBoxEngine


class RunControllerError(Exception):
    """Base exception for run controller errors."""
    pass


class RunNotFoundError(RunControllerError):
    """Raised when operating on a user without an active run."""
    pass


class EmptyQuizError(RunControllerError):
    """Raised when a quiz has no questions to build a map from."""
    pass


class RunController:
    """
    Orchestrates roguelike runs.

    Starting a run loads the quiz, generates a fresh map and wraps both in a
    GameSessionStateMachine. A new run for the same user replaces the old one.
    """

    def __init__(
        self,
        data_manager: DataManager,
        config_manager: ConfigManager,
        dispatcher: Optional[CommandDispatcher] = None,
        rng=None,
    ):
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.config_manager = config_manager
        self.dispatcher = dispatcher or CommandDispatcher()
        self._rng = rng or random
        self._active_runs: Dict[str, GameSessionStateMachine] = {}

        self.logger.info("RunController initialized")

    def start_run(self, user_id: str, quiz_name: str) -> GameSessionStateMachine:
        """
        Start a new run for a user.

        Raises:
            RunControllerError: If the quiz does not exist
            EmptyQuizError: If the quiz has no questions
        """
        if not self.data_manager.quiz_exists(quiz_name):
            available = self.data_manager.get_available_quizzes()
            if not available:
                raise RunControllerError("No quiz files available. Please add quiz files to the quizzes directory.")
            raise RunControllerError(f"Quiz '{quiz_name}' not found. Available quizzes: {', '.join(available)}")

        questions = self.data_manager.get_quiz_questions(quiz_name)
        if not questions:
            raise EmptyQuizError(f"Quiz '{quiz_name}' has no questions")

        settings = self.config_manager.get_settings()
        builder = MapGraphBuilder(rng=self._rng, double_edge_probability=settings.double_edge_probability)
        game_map = builder.build(questions, total_rounds=settings.total_rounds)

        if user_id in self._active_runs:
            self.logger.info(f"Replacing existing run for user {user_id}")

        run = GameSessionStateMachine(
            questions,
            game_map,
            user_id=user_id,
            quiz_id=quiz_name,
            settings=settings,
            reward_engine=RewardBoxEngine.from_settings(settings, rng=self._rng),
            rng=self._rng,
        )
        self._active_runs[user_id] = run

        self.logger.info(
            f"Started run for user {user_id}: quiz='{quiz_name}', nodes={len(game_map.nodes)}",
            extra={
                'event_type': 'run_created',
                'user_id': user_id,
                'quiz_name': quiz_name,
                'layout': list(game_map.layout),
                'timestamp': time.time()
            }
        )
        return run

    def get_run(self, user_id: str) -> Optional[GameSessionStateMachine]:
        return self._active_runs.get(user_id)

    def require_run(self, user_id: str) -> GameSessionStateMachine:
        """
        Get the active run for a user.

        Raises:
            RunNotFoundError: If the user has no run
        """
        run = self._active_runs.get(user_id)
        if run is None:
            raise RunNotFoundError(f"No active run for user {user_id}")
        return run

    def has_active_run(self, user_id: str) -> bool:
        """
        Check if a user has a run that has not been finalized.

        A run stays active through the roulette until its final score is set.
        """
        run = self._active_runs.get(user_id)
        return run is not None and run.session.final_score is None

    def end_run(self, user_id: str) -> bool:
        """
        Remove a user's run.

        Returns:
            True if a run was removed, False if there was none
        """
        run = self._active_runs.pop(user_id, None)
        if run is None:
            self.logger.warning(f"Attempted to end run for user {user_id} but none exists")
            return False

        pending = len(run.outbox)
        if pending:
            self.logger.warning(f"Ending run for user {user_id} with {pending} undelivered commands")
        self.logger.info(f"Ended run for user {user_id}")
        return True

    def get_run_progress(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a user's run.

        Returns:
            Dictionary with progress info, None if no run exists
        """
        run = self._active_runs.get(user_id)
        if run is None:
            return None

        progress = run.get_progress()
        progress['quiz_name'] = run.session.quiz_id
        progress['available_paths'] = run.available_paths()
        progress['start_time'] = run.session.started_at
        return progress

    async def flush_commands(self, user_id: str) -> List[bool]:
        """
        Deliver the run's pending commands through the dispatcher.

        Returns:
            One delivery flag per command

        Raises:
            RunNotFoundError: If the user has no run
        """
        run = self.require_run(user_id)
        commands = run.drain_commands()
        if not commands:
            return []
        return await self.dispatcher.dispatch_all(commands)

    def get_all_active_runs(self) -> Dict[str, Dict[str, Any]]:
        return {user_id: run.get_progress() for user_id, run in self._active_runs.items()}
