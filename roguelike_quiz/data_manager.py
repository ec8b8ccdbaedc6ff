"""
Data manager for JSON quiz files and quiz data validation.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import (
    MatchType,
    MultipleChoiceQuestion,
    OpinionQuestion,
    Question,
    QuestionKind,
    ShortAnswerQuestion,
)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB


class DataManager:
    """Manages loading and validation of JSON quiz files."""

    def __init__(self, quiz_directory: str = "./quizzes/"):
        """
        Initialize DataManager with quiz directory path.

        Args:
            quiz_directory: Path to directory containing JSON quiz files
        """
        self.quiz_directory = Path(quiz_directory)
        self.loaded_quizzes: Dict[str, List[Question]] = {}
        self.quiz_titles: Dict[str, str] = {}
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []

    def load_quiz_files(self) -> Dict[str, List[Question]]:
        """
        Load all JSON files from the quiz directory.

        A file that fails to load is skipped and its error recorded; the
        remaining files still load.

        Returns:
            Dictionary mapping quiz names to lists of questions
        """
        self.loaded_quizzes.clear()
        self.quiz_titles.clear()
        self.load_errors.clear()

        if not self.quiz_directory.is_dir():
            error = f"Quiz directory not found: {self.quiz_directory}"
            self.logger.error(error)
            self.load_errors.append(error)
            return self.loaded_quizzes

        scan_result = self._scan_quiz_files()
        if not scan_result['success']:
            self.load_errors.append(scan_result['error'])
            return self.loaded_quizzes

        json_files = scan_result['files']
        if not json_files:
            self.logger.warning(f"No JSON files found in {self.quiz_directory}")
            self.load_errors.append(f"No quiz files found in {self.quiz_directory}")
            return self.loaded_quizzes

        successful_loads = 0
        for json_file in json_files:
            load_result = self._load_quiz_file_safely(json_file)
            if load_result['success']:
                successful_loads += 1
            else:
                self.load_errors.append(f"{json_file.name}: {load_result['error']}")

        self.logger.info(f"Successfully loaded {successful_loads} of {len(json_files)} quiz files")
        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.loaded_quizzes

    def _scan_quiz_files(self) -> Dict[str, Any]:
        try:
            return {
                'success': True,
                'files': sorted(self.quiz_directory.glob("*.json"))
            }
        except OSError as e:
            return {
                'success': False,
                'error': f"System error scanning {self.quiz_directory}: {e}",
                'files': []
            }

    def _load_single_file(self, file_path: Path) -> Optional[dict]:
        """
        Load and parse a single JSON file.

        Returns:
            Parsed JSON data or None if loading or validation failed
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {file_path}: {e}")
            return None
        except UnicodeDecodeError as e:
            self.logger.error(f"Quiz file {file_path} is not valid UTF-8: {e}")
            return None
        except OSError as e:
            self.logger.error(f"Failed to read quiz file {file_path}: {e}")
            return None

        if not self.validate_quiz_structure(data):
            self.logger.error(f"Invalid quiz structure in {file_path}")
            return None
        return data

    def _load_quiz_file_safely(self, json_file: Path) -> Dict[str, Any]:
        """
        Load a single quiz file with error handling.

        Returns:
            Dictionary with success status and error message if applicable
        """
        try:
            if not os.access(json_file, os.R_OK):
                return {'success': False, 'error': "Permission denied: Cannot read file"}

            file_size = json_file.stat().st_size
            if file_size > MAX_FILE_SIZE:
                return {
                    'success': False,
                    'error': f"File too large ({file_size / 1024 / 1024:.1f}MB). "
                             f"Maximum size is {MAX_FILE_SIZE / 1024 / 1024}MB"
                }

            quiz_data = self._load_single_file(json_file)
            if quiz_data is None:
                return {'success': False, 'error': "Invalid JSON structure or validation failed"}

            questions = self._parse_questions(quiz_data)
            quiz_name = json_file.stem
            self.loaded_quizzes[quiz_name] = questions
            self.quiz_titles[quiz_name] = quiz_data.get("title", quiz_name)
            if not questions:
                self.logger.warning(f"Quiz '{quiz_name}' has no questions")
            self.logger.info(f"Loaded quiz '{quiz_name}' with {len(questions)} questions")
            return {'success': True}

        except OSError as e:
            return {'success': False, 'error': f"System error: {e}"}

    def validate_quiz_structure(self, data: Any) -> bool:
        """
        Validate that JSON data has the correct quiz structure.

        Expected structure:
        {
            "title": str,  # Optional
            "questions": [
                {"type": "multiple-choice", "text": str, "options": [str], "correctAnswer": int}
                | {"type": "short-answer", "text": str, "correctAnswerText": str,
                   "answerMatchType": "exact" | "contains", "additionalAnswers": [str]}
                | {"type": "opinion", "text": str, "options": [str], "isAnonymous": bool}
            ]
        }

        Returns:
            True if structure is valid, False otherwise
        """
        if not isinstance(data, dict):
            self.logger.error("Quiz data must be a JSON object")
            return False

        if "title" in data and not isinstance(data["title"], str):
            self.logger.error("'title' must be a string")
            return False

        questions = data.get("questions")
        if not isinstance(questions, list):
            self.logger.error("Quiz data must contain a 'questions' array")
            return False

        for i, question_data in enumerate(questions):
            if not self._validate_question(i, question_data):
                return False
        return True

    def _validate_question(self, i: int, question_data: Any) -> bool:
        if not isinstance(question_data, dict):
            self.logger.error(f"Question {i} must be an object")
            return False

        if not isinstance(question_data.get("text"), str) or not question_data["text"].strip():
            self.logger.error(f"Question {i} needs a non-empty 'text' string")
            return False

        kinds = {kind.value for kind in QuestionKind}
        question_type = question_data.get("type")
        if question_type not in kinds:
            self.logger.error(f"Question {i} has unknown type {question_type!r}")
            return False

        options = question_data.get("options", [])
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            self.logger.error(f"Question {i} 'options' field must be an array of strings")
            return False

        if question_type == QuestionKind.MULTIPLE_CHOICE.value:
            if len(options) < 2:
                self.logger.error(f"Question {i} needs at least two options")
                return False
            correct = question_data.get("correctAnswer")
            if not isinstance(correct, int) or isinstance(correct, bool) or not 0 <= correct < len(options):
                self.logger.error(f"Question {i} 'correctAnswer' must index into 'options'")
                return False

        elif question_type == QuestionKind.SHORT_ANSWER.value:
            correct_text = question_data.get("correctAnswerText")
            if not isinstance(correct_text, str) or not correct_text.strip():
                self.logger.error(f"Question {i} needs a non-empty 'correctAnswerText'")
                return False
            match_type = question_data.get("answerMatchType", MatchType.EXACT.value)
            if match_type not in {m.value for m in MatchType}:
                self.logger.error(f"Question {i} has unknown answerMatchType {match_type!r}")
                return False
            additional = question_data.get("additionalAnswers", [])
            if not isinstance(additional, list) or not all(isinstance(a, str) for a in additional):
                self.logger.error(f"Question {i} 'additionalAnswers' must be an array of strings")
                return False

        elif not isinstance(question_data.get("isAnonymous", False), bool):
            self.logger.error(f"Question {i} 'isAnonymous' must be a boolean")
            return False

        return True

    def _parse_questions(self, quiz_data: dict) -> List[Question]:
        """Parse validated quiz data into question objects."""
        questions: List[Question] = []

        for question_data in quiz_data["questions"]:
            question_type = QuestionKind(question_data["type"])
            options = tuple(question_data.get("options", []))

            if question_type is QuestionKind.MULTIPLE_CHOICE:
                question = MultipleChoiceQuestion(
                    text=question_data["text"],
                    options=options,
                    correct_index=question_data["correctAnswer"]
                )
            elif question_type is QuestionKind.SHORT_ANSWER:
                question = ShortAnswerQuestion(
                    text=question_data["text"],
                    correct_text=question_data["correctAnswerText"],
                    match_type=MatchType(question_data.get("answerMatchType", MatchType.EXACT.value)),
                    additional_answers=tuple(question_data.get("additionalAnswers", []))
                )
            else:
                question = OpinionQuestion(
                    text=question_data["text"],
                    options=options,
                    anonymous=question_data.get("isAnonymous", False)
                )
            questions.append(question)

        return questions

    def get_available_quizzes(self) -> List[str]:
        """
        Get list of available quiz names.

        Returns:
            List of quiz names (without file extensions)
        """
        return list(self.loaded_quizzes.keys())

    def get_quiz_questions(self, quiz_name: str) -> Optional[List[Question]]:
        """
        Retrieve questions for a specific quiz.

        Returns:
            List of questions for the quiz, or None if quiz not found
        """
        return self.loaded_quizzes.get(quiz_name)

    def get_quiz_title(self, quiz_name: str) -> Optional[str]:
        return self.quiz_titles.get(quiz_name)

    def quiz_exists(self, quiz_name: str) -> bool:
        return quiz_name in self.loaded_quizzes

    def get_question_count(self, quiz_name: str) -> int:
        questions = self.get_quiz_questions(quiz_name)
        return len(questions) if questions else 0

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered during the last load operation.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_quizzes': len(self.loaded_quizzes),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'quiz_directory': str(self.quiz_directory),
            'available_quizzes': list(self.loaded_quizzes.keys())
        }
