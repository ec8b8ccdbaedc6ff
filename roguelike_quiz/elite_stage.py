"""
Elite stage controller: a three-question, all-or-nothing gauntlet.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .answer_validator import validate_answer
from .models import Answer, Question, StageType, make_answer_payload
from .timer import CountdownTimer

DEFAULT_RESULT_DELAY = 2.0


class EliteState(Enum):
    """States of the elite gauntlet."""
    PLAYING = "playing"
    SHOWING_RESULT = "showing-result"
    MOVING_TO_NEXT = "moving-to-next"
    COMPLETED = "completed"


@dataclass(frozen=True)
class EliteOutcome:
    """Result reported to the session when the gauntlet ends."""
    success: bool
    correct_count: int
    last_answer: Optional[Answer]
    answers: List[Answer] = field(default_factory=list)


class EliteStageController:
    """
    Runs the elite gauntlet over a fixed list of questions.

    Each answer is shown for ``result_delay`` seconds before the gauntlet
    moves on. The first incorrect or timed-out answer fails the stage;
    answering every question correctly clears it.
    """

    def __init__(
        self,
        questions: Sequence[Question],
        question_indices: Sequence[int],
        time_limit: float = 30,
        result_delay: float = DEFAULT_RESULT_DELAY,
        on_complete: Optional[Callable[[EliteOutcome], None]] = None,
    ):
        if len(questions) != len(question_indices) or not questions:
            raise ValueError("Elite stage needs one question per question index")

        self.logger = logging.getLogger(__name__)
        self._questions = list(questions)
        self._question_indices = list(question_indices)
        self.time_limit = time_limit
        self.result_delay = result_delay
        self.on_complete = on_complete

        self.state = EliteState.PLAYING
        self.current_index = 0
        self.correct_count = 0
        self.answers: List[Answer] = []
        self.outcome: Optional[EliteOutcome] = None
        self._failed = False
        self._question_timer = self._new_question_timer()
        self._result_timer: Optional[CountdownTimer] = None

    def _new_question_timer(self) -> CountdownTimer:
        return CountdownTimer(self.time_limit, owner_id=f"elite-q{self.current_index}")

    @property
    def current_question(self) -> Optional[Question]:
        if self.state is EliteState.COMPLETED:
            return None
        return self._questions[self.current_index]

    @property
    def question_count(self) -> int:
        return len(self._questions)

    @property
    def time_left(self) -> float:
        return self._question_timer.remaining_time

    def submit_answer(self, answer_index: Optional[int] = None,
                      answer_text: Optional[str] = None,
                      time_spent_seconds: Optional[float] = None) -> Optional[Answer]:
        """
        Answer the current question.

        Returns:
            The recorded Answer, or None when no question is awaiting an answer
        """
        if self.state is not EliteState.PLAYING:
            self.logger.warning(f"Ignoring elite answer in state {self.state.value}")
            return None

        if time_spent_seconds is None:
            time_spent_seconds = self._question_timer.elapsed_time
        time_left = self.time_limit - time_spent_seconds

        result = validate_answer(
            self._questions[self.current_index], answer_index, answer_text,
            time_left=time_left, time_limit=self.time_limit,
        )
        answer = Answer(
            question_index=self._question_indices[self.current_index],
            stage_type=StageType.ELITE,
            answer=make_answer_payload(answer_index, answer_text),
            is_correct=result.is_correct,
            points=result.points,
            time_spent_seconds=time_spent_seconds,
        )
        self._record(answer)
        return answer

    def time_out(self) -> Optional[Answer]:
        """Score the current question as an automatic incorrect answer."""
        if self.state is not EliteState.PLAYING:
            return None
        answer = Answer(
            question_index=self._question_indices[self.current_index],
            stage_type=StageType.ELITE,
            answer=make_answer_payload(None, ""),
            is_correct=False,
            points=0,
            time_spent_seconds=float(self.time_limit),
            timed_out=True,
        )
        self.logger.info(f"Elite question {self.current_index + 1} timed out")
        self._record(answer)
        return answer

    def _record(self, answer: Answer) -> None:
        self.answers.append(answer)
        if answer.is_correct:
            self.correct_count += 1
        else:
            self._failed = True

        self._question_timer.pause()
        self._result_timer = CountdownTimer(self.result_delay, owner_id="elite-result")
        self.state = EliteState.SHOWING_RESULT
        self.logger.debug(
            f"Elite question {self.current_index + 1}/{self.question_count}: "
            f"{'correct' if answer.is_correct else 'incorrect'}"
        )
        if self.result_delay <= 0:
            self.advance()

    def advance(self) -> None:
        """Leave the result display: finish the gauntlet or move to the next question."""
        if self.state is not EliteState.SHOWING_RESULT:
            return

        is_last = self.current_index >= self.question_count - 1
        if self._failed or is_last:
            self._complete(success=not self._failed)
            return

        self.state = EliteState.MOVING_TO_NEXT
        self.current_index += 1
        self._question_timer.cancel()
        self._question_timer = self._new_question_timer()
        self._result_timer = None
        self.state = EliteState.PLAYING

    def tick(self, seconds: float) -> None:
        """Advance whichever timer belongs to the current state."""
        if self.state is EliteState.PLAYING:
            if self._question_timer.tick(seconds):
                self.time_out()
        elif self.state is EliteState.SHOWING_RESULT and self._result_timer is not None:
            if self._result_timer.tick(seconds):
                self.advance()

    def _complete(self, success: bool) -> None:
        self.state = EliteState.COMPLETED
        self._question_timer.cancel()
        self._result_timer = None
        self.outcome = EliteOutcome(
            success=success,
            correct_count=self.correct_count,
            last_answer=self.answers[-1] if self.answers else None,
            answers=list(self.answers),
        )
        self.logger.info(
            f"Elite stage {'cleared' if success else 'failed'} with "
            f"{self.correct_count}/{self.question_count} correct"
        )
        if self.on_complete is not None:
            self.on_complete(self.outcome)
