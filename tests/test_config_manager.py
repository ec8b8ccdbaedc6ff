"""
Unit tests for ConfigManager class.
"""
import json
import logging
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from roguelike_quiz.config_manager import ConfigManager, load_config, setup_logging_from_config
from roguelike_quiz.models import StageType


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager functionality."""

    def setUp(self):
        """Set up test fixtures before each test method."""
        self.config_manager = ConfigManager()

        # Suppress logging during tests
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        """Clean up after each test method."""
        logging.disable(logging.NOTSET)

    def test_initialization_with_defaults(self):
        """Test that ConfigManager initializes with correct default values."""
        settings = self.config_manager.get_settings()

        self.assertEqual(settings.total_rounds, 7)
        self.assertEqual(settings.question_time_limit, 30)
        self.assertEqual(settings.elite_result_delay, 2.0)
        self.assertEqual(settings.double_edge_probability, 0.3)
        self.assertEqual(settings.normal_reward_range, (80, 350))
        self.assertEqual(settings.elite_reward_range, (250, 1000))
        self.assertEqual(settings.roulette_ticket_cost, 500)
        self.assertEqual(self.config_manager.get_quiz_directory(), "./quizzes/")

    def test_get_settings_returns_copy(self):
        """Test that callers cannot mutate the managed settings."""
        settings = self.config_manager.get_settings()
        settings.total_rounds = 99
        self.assertEqual(self.config_manager.get_settings().total_rounds, 7)

    def test_set_total_rounds(self):
        """Test valid and invalid round counts."""
        result = self.config_manager.set_total_rounds(9)
        self.assertTrue(result['success'])
        self.assertIn('user_message', result)
        self.assertEqual(self.config_manager.get_settings().total_rounds, 9)

        for invalid in (2, 16, "7", 7.0, True):
            with self.subTest(value=invalid):
                result = self.config_manager.set_total_rounds(invalid)
                self.assertFalse(result['success'])
                self.assertIn('error', result)
        self.assertEqual(self.config_manager.get_settings().total_rounds, 9)

    def test_set_question_time_limit(self):
        """Test the question time limit bounds."""
        self.assertTrue(self.config_manager.set_question_time_limit(5)['success'])
        self.assertTrue(self.config_manager.set_question_time_limit(300)['success'])
        self.assertFalse(self.config_manager.set_question_time_limit(4)['success'])
        self.assertFalse(self.config_manager.set_question_time_limit(301)['success'])

    def test_set_elite_result_delay(self):
        """Test the elite result delay bounds."""
        self.assertTrue(self.config_manager.set_elite_result_delay(0)['success'])
        self.assertEqual(self.config_manager.get_settings().elite_result_delay, 0.0)
        self.assertFalse(self.config_manager.set_elite_result_delay(-1)['success'])
        self.assertFalse(self.config_manager.set_elite_result_delay("2")['success'])

    def test_set_double_edge_probability(self):
        """Test probability bounds."""
        self.assertTrue(self.config_manager.set_double_edge_probability(1)['success'])
        self.assertFalse(self.config_manager.set_double_edge_probability(1.5)['success'])
        self.assertFalse(self.config_manager.set_double_edge_probability(-0.1)['success'])

    def test_set_reward_range(self):
        """Test reward range validation and routing by stage type."""
        self.assertTrue(self.config_manager.set_reward_range(StageType.NORMAL, 10, 20)['success'])
        self.assertTrue(self.config_manager.set_reward_range(StageType.ELITE, 30, 40)['success'])
        self.assertTrue(self.config_manager.set_reward_range(StageType.CAMPFIRE, 1, 2)['success'])
        settings = self.config_manager.get_settings()
        self.assertEqual(settings.normal_reward_range, (10, 20))
        self.assertEqual(settings.elite_reward_range, (30, 40))
        self.assertEqual(settings.default_reward_range, (1, 2))

        self.assertFalse(self.config_manager.set_reward_range(StageType.NORMAL, 20, 10)['success'])
        self.assertFalse(self.config_manager.set_reward_range(StageType.NORMAL, -1, 10)['success'])
        self.assertFalse(self.config_manager.set_reward_range(StageType.NORMAL, 1.5, 10)['success'])

    def test_reset_to_defaults(self):
        """Test resetting every setting."""
        self.config_manager.set_total_rounds(9)
        self.config_manager.set_roulette_ticket_cost(100)
        self.config_manager.set_quiz_directory("/tmp/quizzes")
        self.config_manager.reset_to_defaults()

        settings = self.config_manager.get_settings()
        self.assertEqual(settings.total_rounds, 7)
        self.assertEqual(settings.roulette_ticket_cost, 500)
        self.assertEqual(self.config_manager.get_quiz_directory(), "./quizzes/")

    def test_validate_settings(self):
        """Test validation of the current settings."""
        self.assertTrue(self.config_manager.validate_settings()['valid'])

        self.config_manager._settings.question_time_limit = 1
        self.config_manager._settings.elite_reward_range = (10, 5)
        result = self.config_manager.validate_settings()
        self.assertFalse(result['valid'])
        self.assertEqual(len(result['issues']), 2)

    def test_settings_summary(self):
        """Test that the summary mentions the key settings."""
        summary = self.config_manager.get_settings_summary()
        self.assertIn("Rounds: 7", summary)
        self.assertIn("Timer: 30 seconds", summary)
        self.assertIn("Ticket cost: 500", summary)

    def test_load_from_dict(self):
        """Test applying the roguelike and logging sections."""
        failures = self.config_manager.load_from_dict({
            "roguelike": {
                "total_rounds": 5,
                "question_time_limit": 20,
                "elite_reward_range": [300, 900],
                "roulette_ticket_cost": "cheap",
                "unknown_key": 1
            },
            "logging": {"level": "DEBUG"}
        })

        settings = self.config_manager.get_settings()
        self.assertEqual(settings.total_rounds, 5)
        self.assertEqual(settings.question_time_limit, 20)
        self.assertEqual(settings.elite_reward_range, (300, 900))
        self.assertEqual(settings.roulette_ticket_cost, 500)
        self.assertEqual(len(failures), 1)
        self.assertEqual(self.config_manager.get_logging_config(), {"level": "DEBUG"})

    def test_load_from_dict_bad_range_shape(self):
        """Test that a malformed range is reported."""
        failures = self.config_manager.load_from_dict({"roguelike": {"normal_reward_range": 5}})
        self.assertEqual(len(failures), 1)
        self.assertFalse(failures[0]['success'])


class TestConfigFiles(unittest.TestCase):
    """Test cases for config file loading and logging setup."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_load_config(self):
        """Test reading a JSON config file."""
        path = Path(self.temp_dir) / "config.json"
        path.write_text(json.dumps({"roguelike": {"total_rounds": 9}}), encoding='utf-8')
        self.assertEqual(load_config(path), {"roguelike": {"total_rounds": 9}})

    def test_load_config_errors(self):
        """Test missing, malformed and non-object config files."""
        with self.assertRaises(FileNotFoundError):
            load_config(Path(self.temp_dir) / "missing.json")

        broken = Path(self.temp_dir) / "broken.json"
        broken.write_text("{", encoding='utf-8')
        with self.assertRaises(json.JSONDecodeError):
            load_config(broken)

        array = Path(self.temp_dir) / "array.json"
        array.write_text("[]", encoding='utf-8')
        with self.assertRaises(ValueError):
            load_config(array)

    def test_setup_logging_from_config(self):
        """Test that logging gets a stream handler and a file handler in the log directory."""
        log_dir = Path(self.temp_dir) / "logs"
        with patch('roguelike_quiz.config_manager.logging.basicConfig') as basic_config:
            log_file = setup_logging_from_config({
                "logging": {"level": "debug", "log_directory": str(log_dir)}
            })

        self.assertTrue(log_dir.is_dir())
        self.assertEqual(log_file, log_dir / "roguelike.log")
        kwargs = basic_config.call_args.kwargs
        self.assertEqual(kwargs['level'], logging.DEBUG)
        handler_types = [type(h) for h in kwargs['handlers']]
        self.assertIn(logging.StreamHandler, handler_types)
        self.assertIn(logging.FileHandler, handler_types)
        for handler in kwargs['handlers']:
            handler.close()


if __name__ == '__main__':
    unittest.main()
