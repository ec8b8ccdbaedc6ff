"""
Core data models for the roguelike quiz engine.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union
import time


class QuestionKind(Enum):
    """Kinds of quiz questions."""
    MULTIPLE_CHOICE = "multiple-choice"
    SHORT_ANSWER = "short-answer"
    OPINION = "opinion"


class MatchType(Enum):
    """How a short-answer response is compared to the accepted answers."""
    EXACT = "exact"
    CONTAINS = "contains"


class StageType(Enum):
    """Kinds of map nodes and the stages bound to them."""
    START = "start"
    NORMAL = "normal"
    ELITE = "elite"
    CAMPFIRE = "campfire"
    ROULETTE = "roulette"
    END = "end"


class GameState(Enum):
    """Top-level states of a roguelike run."""
    MAP_SELECTION = "map-selection"
    STAGE_ACTIVE = "stage-active"
    REWARD_BOX = "reward-box"
    COMPLETED = "completed"


class BuffId(Enum):
    """Temporary buffs offered at campfires."""
    PASSION = "PASSION_BUFF"
    WISDOM = "WISDOM_BUFF"
    LUCK = "LUCK_BUFF"


@dataclass(frozen=True)
class MultipleChoiceQuestion:
    """A question answered by picking one of several options."""
    text: str
    options: Tuple[str, ...]
    correct_index: int

    @property
    def kind(self) -> QuestionKind:
        return QuestionKind.MULTIPLE_CHOICE


@dataclass(frozen=True)
class ShortAnswerQuestion:
    """A free-text question with one primary and optional extra accepted answers."""
    text: str
    correct_text: str
    match_type: MatchType = MatchType.EXACT
    additional_answers: Tuple[str, ...] = ()

    @property
    def kind(self) -> QuestionKind:
        return QuestionKind.SHORT_ANSWER


@dataclass(frozen=True)
class OpinionQuestion:
    """A survey-style question; every non-empty answer is accepted."""
    text: str
    options: Tuple[str, ...] = ()
    anonymous: bool = False

    @property
    def kind(self) -> QuestionKind:
        return QuestionKind.OPINION


Question = Union[MultipleChoiceQuestion, ShortAnswerQuestion, OpinionQuestion]


@dataclass(frozen=True)
class ChoiceAnswer:
    """Answer payload for a multiple-choice question."""
    answer_index: int

    def to_dict(self) -> Dict[str, int]:
        return {'answerIndex': self.answer_index}


@dataclass(frozen=True)
class TextAnswer:
    """Answer payload for short-answer and opinion questions."""
    answer_text: str

    def to_dict(self) -> Dict[str, str]:
        return {'answerText': self.answer_text}


AnswerPayload = Union[ChoiceAnswer, TextAnswer]


def make_answer_payload(answer_index: Optional[int] = None,
                        answer_text: Optional[str] = None) -> AnswerPayload:
    """Build the payload for a submission; an index wins over text."""
    if answer_index is not None:
        return ChoiceAnswer(answer_index)
    return TextAnswer(answer_text or "")


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass
class MapNode:
    """A single node on the roguelike map."""
    id: str
    kind: StageType
    position: Position
    round_index: int


@dataclass(frozen=True)
class MapEdge:
    """Directed edge between nodes of adjacent rounds."""
    source: str
    target: str
    fallback: bool = False


@dataclass
class Stage:
    """Gameplay unit bound to one map node."""
    type: StageType
    question_indices: List[int] = field(default_factory=list)
    completed: bool = False
    score: int = 0
    failed: bool = False
    skipped: bool = False


@dataclass(frozen=True)
class Answer:
    """One entry of a run's answer log."""
    question_index: int
    stage_type: StageType
    answer: AnswerPayload
    is_correct: bool
    points: int
    time_spent_seconds: float
    answered_at: float = field(default_factory=time.time)
    timed_out: bool = False


@dataclass(frozen=True)
class PendingAnswer:
    """An answer whose points are deferred until a reward box is resolved."""
    question_index: int
    answer: AnswerPayload
    is_correct: bool
    time_spent_seconds: float
    stage_type: StageType


@dataclass
class TemporaryBuff:
    id: BuffId
    stack_count: int = 1
    active: bool = True


@dataclass(frozen=True)
class ActivityBonus:
    """Breakdown of the end-of-run activity bonus."""
    correct_answer_bonus: int
    streak_bonus: int
    speed_bonus: int
    participation_bonus: int
    completion_bonus: int

    @property
    def total(self) -> int:
        return (self.correct_answer_bonus + self.streak_bonus + self.speed_bonus
                + self.participation_bonus + self.completion_bonus)


@dataclass(frozen=True)
class RouletteResult:
    multiplier: float
    bonus_points: int
    message: str


@dataclass
class GameSession:
    """Mutable state of one roguelike run."""
    id: str
    user_id: str
    quiz_id: str
    current_node_id: str
    base_score: int = 0
    correct_answers: int = 0
    total_questions: int = 0
    current_streak: int = 0
    max_streak: int = 0
    participated_in_opinion: bool = False
    buffs: Dict[BuffId, TemporaryBuff] = field(default_factory=dict)
    game_state: GameState = GameState.MAP_SELECTION
    waiting_for_reward: bool = False
    pending_answer: Optional[PendingAnswer] = None
    answers: List[Answer] = field(default_factory=list)
    roulette_results: List[RouletteResult] = field(default_factory=list)
    completed: bool = False
    final_score: Optional[int] = None
    started_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None

    @property
    def average_answer_time(self) -> float:
        """Mean time spent per logged answer, 0.0 when nothing was answered."""
        if not self.answers:
            return 0.0
        return sum(a.time_spent_seconds for a in self.answers) / len(self.answers)

    def buff_stacks(self, buff_id: BuffId) -> int:
        buff = self.buffs.get(buff_id)
        if buff is None or not buff.active:
            return 0
        return buff.stack_count


@dataclass
class RoguelikeSettings:
    """Tunable parameters of map generation and scoring."""
    total_rounds: int = 7
    question_time_limit: int = 30
    elite_result_delay: float = 2.0
    double_edge_probability: float = 0.3
    normal_reward_range: Tuple[int, int] = (80, 350)
    elite_reward_range: Tuple[int, int] = (250, 1000)
    default_reward_range: Tuple[int, int] = (30, 180)
    roulette_ticket_cost: int = 500
