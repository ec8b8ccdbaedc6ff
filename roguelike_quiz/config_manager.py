"""
Configuration manager for roguelike run settings and logging.
"""
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .models import RoguelikeSettings, StageType


class ConfigManager:
    """Manages roguelike settings with validation."""

    # Default configuration values
    DEFAULT_TOTAL_ROUNDS = 7
    DEFAULT_QUESTION_TIME_LIMIT = 30
    DEFAULT_ELITE_RESULT_DELAY = 2.0
    DEFAULT_DOUBLE_EDGE_PROBABILITY = 0.3
    DEFAULT_ROULETTE_TICKET_COST = 500
    DEFAULT_QUIZ_DIRECTORY = "./quizzes/"

    # Validation limits
    MIN_TOTAL_ROUNDS = 3
    MAX_TOTAL_ROUNDS = 15
    MIN_QUESTION_TIME_LIMIT = 5
    MAX_QUESTION_TIME_LIMIT = 300  # 5 minutes
    MAX_ELITE_RESULT_DELAY = 10.0
    MIN_TICKET_COST = 1

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = RoguelikeSettings()
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self._logging_config: Dict[str, Any] = {}

    def get_settings(self) -> RoguelikeSettings:
        """
        Get a copy of the current settings.

        Returns:
            RoguelikeSettings object with current configuration
        """
        return replace(self._settings)

    @staticmethod
    def _failure(error_msg: str, user_message: str) -> Dict[str, Any]:
        return {'success': False, 'error': error_msg, 'user_message': user_message}

    def _set_int(self, attribute: str, label: str, value: Any,
                 minimum: int, maximum: Optional[int]) -> Dict[str, Any]:
        if not isinstance(value, int) or isinstance(value, bool):
            error_msg = f"{label} must be an integer, got {type(value).__name__}"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ Invalid input: Expected a number, got {type(value).__name__}")

        if value < minimum:
            error_msg = f"{label} must be at least {minimum}"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ {label} too small: Minimum is {minimum}")

        if maximum is not None and value > maximum:
            error_msg = f"{label} cannot exceed {maximum}"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ {label} too large: Maximum is {maximum}")

        setattr(self._settings, attribute, value)
        self.logger.info(f"{label} set to {value}")
        return {
            'success': True,
            'message': f"{label} set to {value}",
            'user_message': f"✅ {label} set to {value}"
        }

    def set_total_rounds(self, rounds: int) -> Dict[str, Any]:
        """
        Set the number of map rounds, start and end included.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_int('total_rounds', "Total rounds", rounds,
                             self.MIN_TOTAL_ROUNDS, self.MAX_TOTAL_ROUNDS)

    def set_question_time_limit(self, seconds: int) -> Dict[str, Any]:
        """
        Set the per-question time limit.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_int('question_time_limit', "Question time limit", seconds,
                             self.MIN_QUESTION_TIME_LIMIT, self.MAX_QUESTION_TIME_LIMIT)

    def set_roulette_ticket_cost(self, cost: int) -> Dict[str, Any]:
        return self._set_int('roulette_ticket_cost', "Roulette ticket cost", cost,
                             self.MIN_TICKET_COST, None)

    def set_elite_result_delay(self, delay: Union[int, float]) -> Dict[str, Any]:
        """Set how long an elite answer's result is shown, in seconds."""
        if not isinstance(delay, (int, float)) or isinstance(delay, bool):
            error_msg = f"Elite result delay must be a number, got {type(delay).__name__}"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ Invalid input: Expected a number, got {type(delay).__name__}")

        if delay < 0 or delay > self.MAX_ELITE_RESULT_DELAY:
            error_msg = f"Elite result delay must be between 0 and {self.MAX_ELITE_RESULT_DELAY} seconds"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ Delay out of range: 0 to {self.MAX_ELITE_RESULT_DELAY} seconds")

        self._settings.elite_result_delay = float(delay)
        self.logger.info(f"Elite result delay set to {delay} seconds")
        return {
            'success': True,
            'message': f"Elite result delay set to {delay} seconds",
            'user_message': f"✅ Elite results shown for {delay} seconds"
        }

    def set_double_edge_probability(self, probability: Union[int, float]) -> Dict[str, Any]:
        """Set the chance that a map node gets a second outgoing edge."""
        if not isinstance(probability, (int, float)) or isinstance(probability, bool):
            error_msg = f"Double edge probability must be a number, got {type(probability).__name__}"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ Invalid input: Expected a number, got {type(probability).__name__}")

        if not 0.0 <= probability <= 1.0:
            error_msg = "Double edge probability must be between 0 and 1"
            self.logger.error(error_msg)
            return self._failure(error_msg, "❌ Probability must be between 0 and 1")

        self._settings.double_edge_probability = float(probability)
        self.logger.info(f"Double edge probability set to {probability}")
        return {
            'success': True,
            'message': f"Double edge probability set to {probability}",
            'user_message': f"✅ Branching chance set to {probability:.0%}"
        }

    def set_reward_range(self, stage_type: StageType, low: int, high: int) -> Dict[str, Any]:
        """
        Set the reward box range for normal or elite stages.

        Args:
            stage_type: StageType.NORMAL or StageType.ELITE; anything else sets the default range
            low: Smallest reward, inclusive
            high: Largest reward, inclusive
        """
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in (low, high)):
            error_msg = "Reward range bounds must be integers"
            self.logger.error(error_msg)
            return self._failure(error_msg, "❌ Invalid input: Reward bounds must be whole numbers")

        if low < 0 or high < low:
            error_msg = f"Invalid reward range [{low}, {high}]"
            self.logger.error(error_msg)
            return self._failure(error_msg, "❌ Reward range must satisfy 0 <= low <= high")

        if stage_type is StageType.NORMAL:
            self._settings.normal_reward_range = (low, high)
        elif stage_type is StageType.ELITE:
            self._settings.elite_reward_range = (low, high)
        else:
            self._settings.default_reward_range = (low, high)

        self.logger.info(f"Reward range for {stage_type.value} set to [{low}, {high}]")
        return {
            'success': True,
            'message': f"Reward range for {stage_type.value} set to [{low}, {high}]",
            'user_message': f"✅ {stage_type.value.title()} rewards now range from {low} to {high}"
        }

    def set_quiz_directory(self, directory: str) -> Dict[str, Any]:
        """Set the directory path for quiz files."""
        if not isinstance(directory, str) or not directory.strip():
            error_msg = "Quiz directory must be a non-empty string"
            self.logger.error(error_msg)
            return self._failure(error_msg, "❌ Directory path cannot be empty")

        self._quiz_directory = directory
        self.logger.info(f"Quiz directory set to {directory}")
        return {
            'success': True,
            'message': f"Quiz directory set to {directory}",
            'user_message': f"✅ Quiz directory set to {directory}"
        }

    def get_quiz_directory(self) -> str:
        return self._quiz_directory

    def get_logging_config(self) -> Dict[str, Any]:
        return dict(self._logging_config)

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = RoguelikeSettings(
            total_rounds=self.DEFAULT_TOTAL_ROUNDS,
            question_time_limit=self.DEFAULT_QUESTION_TIME_LIMIT,
            elite_result_delay=self.DEFAULT_ELITE_RESULT_DELAY,
            double_edge_probability=self.DEFAULT_DOUBLE_EDGE_PROBABILITY,
            roulette_ticket_cost=self.DEFAULT_ROULETTE_TICKET_COST,
        )
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self.logger.info("All settings reset to default values")

    def load_from_dict(self, config: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Apply the "roguelike" and "logging" sections of a configuration dict.

        Unknown keys are ignored. Every recognised key is passed through its
        validating setter.

        Returns:
            List of the failed setter results; empty when everything applied
        """
        section = config.get('roguelike', {})
        failures = []

        setters = {
            'total_rounds': self.set_total_rounds,
            'question_time_limit': self.set_question_time_limit,
            'elite_result_delay': self.set_elite_result_delay,
            'double_edge_probability': self.set_double_edge_probability,
            'roulette_ticket_cost': self.set_roulette_ticket_cost,
            'quiz_directory': self.set_quiz_directory,
        }
        for key, setter in setters.items():
            if key in section:
                result = setter(section[key])
                if not result['success']:
                    failures.append(result)

        ranges = {
            'normal_reward_range': StageType.NORMAL,
            'elite_reward_range': StageType.ELITE,
            'default_reward_range': StageType.ROULETTE,
        }
        for key, stage_type in ranges.items():
            if key in section:
                bounds = section[key]
                if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
                    failures.append(self._failure(f"{key} must be a [low, high] pair",
                                                  f"❌ {key} must be a pair of numbers"))
                    continue
                result = self.set_reward_range(stage_type, bounds[0], bounds[1])
                if not result['success']:
                    failures.append(result)

        self._logging_config = dict(config.get('logging', {}))

        if failures:
            self.logger.warning(f"{len(failures)} configuration value(s) rejected")
        return failures

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }
        settings = self._settings

        if not self.MIN_TOTAL_ROUNDS <= settings.total_rounds <= self.MAX_TOTAL_ROUNDS:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid total rounds: {settings.total_rounds}")

        if not self.MIN_QUESTION_TIME_LIMIT <= settings.question_time_limit <= self.MAX_QUESTION_TIME_LIMIT:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid question time limit: {settings.question_time_limit}"
            )

        if not 0.0 <= settings.double_edge_probability <= 1.0:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid double edge probability: {settings.double_edge_probability}"
            )

        for name in ('normal_reward_range', 'elite_reward_range', 'default_reward_range'):
            low, high = getattr(settings, name)
            if low < 0 or high < low:
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {name.replace('_', ' ')}: [{low}, {high}]")

        if settings.roulette_ticket_cost < self.MIN_TICKET_COST:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid roulette ticket cost: {settings.roulette_ticket_cost}"
            )

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        s = self._settings
        return (
            f"Roguelike Settings:\n"
            f"• Rounds: {s.total_rounds}\n"
            f"• Timer: {s.question_time_limit} seconds\n"
            f"• Elite result delay: {s.elite_result_delay} seconds\n"
            f"• Branching chance: {s.double_edge_probability:.0%}\n"
            f"• Normal rewards: {s.normal_reward_range[0]}-{s.normal_reward_range[1]}\n"
            f"• Elite rewards: {s.elite_reward_range[0]}-{s.elite_reward_range[1]}\n"
            f"• Ticket cost: {s.roulette_ticket_cost}\n"
            f"• Quiz Directory: {self._quiz_directory}"
        )


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a JSON configuration file.

    Raises:
        FileNotFoundError: If the file does not exist
        json.JSONDecodeError: If the file is not valid JSON
    """
    with open(path, 'r', encoding='utf-8') as f:
        config = json.load(f)
    if not isinstance(config, dict):
        raise ValueError(f"Configuration root must be an object: {path}")
    return config


def setup_logging_from_config(config: Dict[str, Any]) -> Path:
    """Set up logging based on configuration; returns the log file path."""
    log_config = config.get('logging', {})
    log_level = getattr(logging, log_config.get('level', 'INFO').upper(), logging.INFO)
    log_directory = Path(log_config.get('log_directory', './logs/'))
    log_file = log_directory / log_config.get('log_file', 'roguelike.log')

    log_directory.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file, encoding='utf-8')
        ]
    )
    return log_file
