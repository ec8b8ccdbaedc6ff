"""
Unit tests for RunController.
"""
import logging
import random
import unittest
from unittest.mock import AsyncMock, Mock

from roguelike_quiz.config_manager import ConfigManager
from roguelike_quiz.data_manager import DataManager
from roguelike_quiz.dispatcher import CommandDispatcher
from roguelike_quiz.game_session import GameSessionStateMachine
from roguelike_quiz.models import GameState, StageType
from roguelike_quiz.run_controller import (
    EmptyQuizError,
    RunController,
    RunControllerError,
    RunNotFoundError,
)
from tests.test_fixtures import TestFixtures


class RunControllerTestCase(unittest.TestCase):

    def setUp(self):
        """Set up a controller over mocked quiz data."""
        logging.disable(logging.CRITICAL)
        self.questions = TestFixtures.create_mixed_questions()
        quizzes = {"mixed": self.questions, "empty": []}

        self.data_manager = Mock(spec=DataManager)
        self.data_manager.quiz_exists.side_effect = lambda name: name in quizzes
        self.data_manager.get_quiz_questions.side_effect = quizzes.get
        self.data_manager.get_available_quizzes.return_value = list(quizzes)

        self.config_manager = ConfigManager()
        self.config_manager.set_elite_result_delay(0)
        self.controller = RunController(self.data_manager, self.config_manager, rng=random.Random(8))

    def tearDown(self):
        logging.disable(logging.NOTSET)


class TestRunLifecycle(RunControllerTestCase):
    """Test cases for starting, replacing and ending runs."""

    def test_start_run(self):
        """Test that a run is built from the quiz and configured settings."""
        run = self.controller.start_run("user-1", "mixed")

        self.assertIsInstance(run, GameSessionStateMachine)
        self.assertIs(self.controller.get_run("user-1"), run)
        self.assertTrue(self.controller.has_active_run("user-1"))
        self.assertIs(run.state, GameState.MAP_SELECTION)
        self.assertEqual(run.session.quiz_id, "mixed")
        self.assertEqual(len(run.map.layout), 7)
        self.assertEqual(run.settings.elite_result_delay, 0.0)

    def test_configured_rounds_used(self):
        """Test that the configured round count shapes the map."""
        self.config_manager.set_total_rounds(5)
        run = self.controller.start_run("user-1", "mixed")
        self.assertEqual(len(run.map.layout), 5)

    def test_start_run_replaces_existing(self):
        """Test that starting again replaces the user's run."""
        first = self.controller.start_run("user-1", "mixed")
        second = self.controller.start_run("user-1", "mixed")
        self.assertIsNot(first, second)
        self.assertIs(self.controller.get_run("user-1"), second)

    def test_runs_are_per_user(self):
        """Test that users do not share runs."""
        a = self.controller.start_run("a", "mixed")
        b = self.controller.start_run("b", "mixed")
        self.assertIsNot(a.session, b.session)
        self.assertEqual(set(self.controller.get_all_active_runs()), {"a", "b"})

    def test_unknown_quiz(self):
        """Test that an unknown quiz name is rejected."""
        with self.assertRaises(RunControllerError) as ctx:
            self.controller.start_run("user-1", "nope")
        self.assertIn("mixed", str(ctx.exception))
        self.assertFalse(self.controller.has_active_run("user-1"))

    def test_empty_quiz(self):
        """Test that a quiz without questions cannot be played."""
        with self.assertRaises(EmptyQuizError):
            self.controller.start_run("user-1", "empty")
        self.assertIsNone(self.controller.get_run("user-1"))

    def test_end_run(self):
        """Test removing a run."""
        self.controller.start_run("user-1", "mixed")
        self.assertTrue(self.controller.end_run("user-1"))
        self.assertFalse(self.controller.end_run("user-1"))
        self.assertIsNone(self.controller.get_run("user-1"))
        with self.assertRaises(RunNotFoundError):
            self.controller.require_run("user-1")

    def test_run_progress(self):
        """Test progress reporting."""
        self.assertIsNone(self.controller.get_run_progress("user-1"))

        run = self.controller.start_run("user-1", "mixed")
        progress = self.controller.get_run_progress("user-1")
        self.assertEqual(progress['quiz_name'], "mixed")
        self.assertEqual(progress['state'], "map-selection")
        self.assertEqual(progress['base_score'], 0)
        self.assertEqual(progress['completed_stages'], 1)
        self.assertEqual(progress['available_paths'], run.available_paths())

    def test_finalized_run_is_not_active(self):
        """Test that a run stops counting as active once its score is final."""
        run = self.controller.start_run("user-1", "mixed")
        run.session.final_score = 10
        self.assertFalse(self.controller.has_active_run("user-1"))
        self.assertIsNotNone(self.controller.get_run("user-1"))


class TestFlushCommands(unittest.IsolatedAsyncioTestCase):
    """Test cases for draining a run's outbox."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        questions = TestFixtures.create_multiple_choice_questions(6)
        self.data_manager = Mock(spec=DataManager)
        self.data_manager.quiz_exists.return_value = True
        self.data_manager.get_quiz_questions.return_value = questions

        self.activity_sink = Mock()
        self.activity_sink.record_activity = AsyncMock()
        dispatcher = CommandDispatcher(activity_sink=self.activity_sink)
        self.controller = RunController(self.data_manager, ConfigManager(), dispatcher, rng=random.Random(3))

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def _start_with_normal_path(self):
        for seed in range(50):
            self.controller._rng = random.Random(seed)
            run = self.controller.start_run("user-1", "quiz")
            if any(run.map.stages[n].type is StageType.NORMAL for n in run.available_paths()):
                return run
        self.fail("no seed produced a normal stage next to the start node")

    async def test_flush_delivers_outbox(self):
        """Test that a wrong answer's activity record is delivered on flush."""
        run = self._start_with_normal_path()
        normal = [n for n in run.available_paths() if run.map.stages[n].type is StageType.NORMAL][0]
        run.select_map_path(normal)
        run.submit_answer(answer_index=0, time_spent_seconds=2)

        results = await self.controller.flush_commands("user-1")

        self.assertEqual(results, [True])
        self.assertEqual(run.outbox, [])
        self.activity_sink.record_activity.assert_awaited_once()
        self.assertEqual(self.activity_sink.record_activity.call_args[0][5], 0)

    async def test_flush_with_nothing_pending(self):
        """Test flushing an empty outbox."""
        self.controller.start_run("user-1", "quiz")
        self.assertEqual(await self.controller.flush_commands("user-1"), [])

    async def test_flush_unknown_user(self):
        """Test flushing for a user without a run."""
        with self.assertRaises(RunNotFoundError):
            await self.controller.flush_commands("ghost")


if __name__ == '__main__':
    unittest.main()
