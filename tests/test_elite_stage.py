"""
Unit tests for the elite gauntlet controller.
"""
import logging
import unittest
from unittest.mock import Mock

from roguelike_quiz.elite_stage import EliteStageController, EliteState
from roguelike_quiz.models import StageType
from tests.test_fixtures import TestFixtures


class TestEliteStageController(unittest.TestCase):
    """Test cases for the three-question gauntlet."""

    def setUp(self):
        """Set up three multiple-choice questions (correct option is 1)."""
        logging.disable(logging.CRITICAL)
        self.questions = TestFixtures.create_multiple_choice_questions(3)
        self.on_complete = Mock()

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def _controller(self, result_delay=0.0, time_limit=30):
        return EliteStageController(
            self.questions, [10, 11, 12],
            time_limit=time_limit,
            result_delay=result_delay,
            on_complete=self.on_complete,
        )

    def test_three_correct_answers_succeed(self):
        """Test that [correct, correct, correct] clears the stage."""
        controller = self._controller()
        for _ in range(3):
            controller.submit_answer(answer_index=1, time_spent_seconds=5)

        self.assertIs(controller.state, EliteState.COMPLETED)
        outcome = self.on_complete.call_args[0][0]
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.correct_count, 3)
        self.assertEqual(outcome.last_answer.question_index, 12)
        self.assertEqual(len(outcome.answers), 3)

    def test_third_answer_wrong_fails(self):
        """Test that [correct, correct, incorrect] fails with two correct."""
        controller = self._controller()
        controller.submit_answer(answer_index=1, time_spent_seconds=5)
        controller.submit_answer(answer_index=1, time_spent_seconds=5)
        controller.submit_answer(answer_index=0, time_spent_seconds=5)

        outcome = self.on_complete.call_args[0][0]
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.correct_count, 2)
        self.assertFalse(outcome.last_answer.is_correct)

    def test_first_wrong_answer_ends_gauntlet(self):
        """Test that the gauntlet stops at the first mistake."""
        controller = self._controller()
        controller.submit_answer(answer_index=3, time_spent_seconds=5)

        self.assertIs(controller.state, EliteState.COMPLETED)
        self.on_complete.assert_called_once()
        outcome = self.on_complete.call_args[0][0]
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.correct_count, 0)
        self.assertEqual(len(outcome.answers), 1)

    def test_answers_are_tagged_elite(self):
        """Test that recorded answers carry the elite stage type and quiz index."""
        controller = self._controller()
        answer = controller.submit_answer(answer_index=1, time_spent_seconds=0)
        self.assertIs(answer.stage_type, StageType.ELITE)
        self.assertEqual(answer.question_index, 10)
        self.assertEqual(answer.points, 100)

    def test_result_delay_holds_before_next_question(self):
        """Test that answers are rejected while a result is shown."""
        controller = self._controller(result_delay=2.0)
        controller.submit_answer(answer_index=1, time_spent_seconds=3)

        self.assertIs(controller.state, EliteState.SHOWING_RESULT)
        self.assertIsNone(controller.submit_answer(answer_index=1))

        controller.tick(1.0)
        self.assertIs(controller.state, EliteState.SHOWING_RESULT)
        controller.tick(1.0)
        self.assertIs(controller.state, EliteState.PLAYING)
        self.assertEqual(controller.current_index, 1)
        self.assertIs(controller.current_question, self.questions[1])

    def test_question_timer_paused_during_result(self):
        """Test that the question timer does not run while a result is shown."""
        controller = self._controller(result_delay=2.0, time_limit=10)
        controller.tick(4.0)
        controller.submit_answer(answer_index=1)
        remaining = controller.time_left
        controller.tick(1.0)
        self.assertEqual(controller.time_left, remaining)

    def test_timeout_is_incorrect(self):
        """Test that an expired question timer fails the gauntlet."""
        controller = self._controller(time_limit=10)
        controller.tick(10.0)

        outcome = self.on_complete.call_args[0][0]
        self.assertFalse(outcome.success)
        self.assertTrue(outcome.last_answer.timed_out)
        self.assertEqual(outcome.last_answer.points, 0)

    def test_fresh_timer_per_question(self):
        """Test that each question starts with the full time limit."""
        controller = self._controller(time_limit=20)
        controller.tick(15.0)
        controller.submit_answer(answer_index=1)
        self.assertEqual(controller.time_left, 20)

    def test_mismatched_indices_rejected(self):
        """Test constructor validation."""
        with self.assertRaises(ValueError):
            EliteStageController(self.questions, [0, 1])
        with self.assertRaises(ValueError):
            EliteStageController([], [])


if __name__ == '__main__':
    unittest.main()
