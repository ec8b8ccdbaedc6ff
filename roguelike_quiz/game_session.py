"""
Game session state machine for roguelike runs.

The machine owns the player's position on the map, the active stage and
the run's GameSession record. All transitions are synchronous; side effects
on external systems are emitted as commands into ``outbox`` and delivered
later by a CommandDispatcher.
"""
import logging
import random
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence

from .answer_validator import validate_answer
from .dispatcher import ActivityLogCommand, Command, PublishScoreCommand
from .elite_stage import EliteOutcome, EliteStageController
from .map_generator import RoguelikeMap
from .models import (
    ActivityBonus,
    Answer,
    AnswerPayload,
    BuffId,
    GameSession,
    GameState,
    PendingAnswer,
    Question,
    RoguelikeSettings,
    RouletteResult,
    Stage,
    StageType,
    TemporaryBuff,
    make_answer_payload,
)
from .rewards import RewardBoxEngine, RewardOffer, apply_multiplier
from .roulette import RouletteEngine, calculate_activity_bonus
from .timer import CountdownTimer


class GameSessionStateMachine:
    """
    Drives one player through a generated map.

    States move ``map-selection -> stage-active -> (reward-box |
    map-selection | completed)``. Invalid events are logged and ignored;
    they return False or None instead of raising.
    """

    def __init__(
        self,
        questions: Sequence[Question],
        game_map: RoguelikeMap,
        user_id: str,
        quiz_id: str = "",
        settings: Optional[RoguelikeSettings] = None,
        reward_engine: Optional[RewardBoxEngine] = None,
        rng=None,
    ):
        if game_map.is_empty:
            raise ValueError("Cannot start a roguelike run on an empty map")

        self.logger = logging.getLogger(__name__)
        self.questions = list(questions)
        self.map = game_map
        self.settings = settings or RoguelikeSettings()
        self._rng = rng or random
        self.reward_engine = reward_engine or RewardBoxEngine.from_settings(self.settings, rng=self._rng)

        self.session = GameSession(
            id=f"{user_id}_{uuid.uuid4().hex[:8]}",
            user_id=user_id,
            quiz_id=quiz_id,
            current_node_id=game_map.start_node_id,
        )
        self.map.stages[game_map.start_node_id].completed = True

        self.outbox: List[Command] = []
        self.question_timer: Optional[CountdownTimer] = None
        self.elite_controller: Optional[EliteStageController] = None
        self.reward_offer: Optional[RewardOffer] = None
        self.campfire_offer: Optional[RewardOffer] = None
        self.buff_offer: List[BuffId] = []
        self.roulette: Optional[RouletteEngine] = None

        self.logger.info(
            f"Roguelike run {self.session.id} started for user {user_id}",
            extra={
                'event_type': 'run_started',
                'session_id': self.session.id,
                'user_id': user_id,
                'quiz_id': quiz_id,
                'node_count': len(game_map.nodes),
                'timestamp': time.time()
            }
        )

    # ------------------------------------------------------------------
    # Queries

    @property
    def state(self) -> GameState:
        return self.session.game_state

    @property
    def current_node_id(self) -> str:
        return self.session.current_node_id

    @property
    def current_stage(self) -> Stage:
        return self.map.stages[self.session.current_node_id]

    @property
    def current_question(self) -> Optional[Question]:
        if self.state is not GameState.STAGE_ACTIVE:
            return None
        if self.elite_controller is not None:
            return self.elite_controller.current_question
        indices = self.current_stage.question_indices
        return self.questions[indices[0]] if indices else None

    def available_paths(self) -> List[str]:
        return self.map.outgoing(self.session.current_node_id)

    def activity_bonus(self) -> ActivityBonus:
        return calculate_activity_bonus(self.session)

    def drain_commands(self) -> List[Command]:
        """Hand over pending commands and clear the outbox."""
        commands, self.outbox = self.outbox, []
        return commands

    def get_progress(self) -> Dict[str, Any]:
        session = self.session
        return {
            'session_id': session.id,
            'state': session.game_state.value,
            'current_node_id': session.current_node_id,
            'base_score': session.base_score,
            'correct_answers': session.correct_answers,
            'total_questions': session.total_questions,
            'current_streak': session.current_streak,
            'max_streak': session.max_streak,
            'completed_stages': sum(1 for s in self.map.stages.values() if s.completed),
            'final_score': session.final_score,
        }

    # ------------------------------------------------------------------
    # Transitions

    def _transition(self, new_state: GameState, reason: str) -> None:
        old_state = self.session.game_state
        self.session.game_state = new_state
        self.logger.info(
            f"Run {self.session.id}: {old_state.value} -> {new_state.value} ({reason})",
            extra={
                'event_type': 'run_state_transition',
                'session_id': self.session.id,
                'from_state': old_state.value,
                'to_state': new_state.value,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    def select_map_path(self, next_node_id: str) -> bool:
        """
        Move to an adjacent node and activate its stage.

        Returns:
            True if the move happened, False if it was rejected
        """
        if self.state is not GameState.MAP_SELECTION:
            self.logger.warning(f"Cannot select a path while in state {self.state.value}")
            return False
        if next_node_id not in self.available_paths():
            self.logger.warning(
                f"Rejected move {self.session.current_node_id} -> {next_node_id}: not adjacent"
            )
            return False

        self.session.current_node_id = next_node_id
        stage = self.map.stages[next_node_id]

        if next_node_id == self.map.end_node_id:
            self.session.completed = True
            self.session.completed_at = time.time()
            self._transition(GameState.COMPLETED, "reached end node")
            return True

        if stage.type is StageType.ELITE:
            self.elite_controller = EliteStageController(
                [self.questions[i] for i in stage.question_indices],
                stage.question_indices,
                time_limit=self.settings.question_time_limit,
                result_delay=self.settings.elite_result_delay,
                on_complete=self._finish_elite,
            )
        elif stage.type in (StageType.NORMAL, StageType.CAMPFIRE):
            if not stage.question_indices:
                # A stage without questions has nothing to resolve
                stage.completed = True
                self.logger.warning(f"Stage {next_node_id} has no questions, skipping it")
                return True
            self.question_timer = CountdownTimer(
                self.settings.question_time_limit, owner_id=next_node_id
            )
            if stage.type is StageType.CAMPFIRE:
                self.campfire_offer = self.reward_engine.create_multiplier_offer()
                self.buff_offer = list(BuffId)

        self._transition(GameState.STAGE_ACTIVE, f"entered {stage.type.value} stage {next_node_id}")
        return True

    def submit_answer(
        self,
        answer_index: Optional[int] = None,
        answer_text: Optional[str] = None,
        time_spent_seconds: Optional[float] = None,
        elite_outcome: Optional[EliteOutcome] = None,
    ) -> Optional[Answer]:
        """
        Answer the active stage.

        Normal and campfire stages are validated here. Elite stages either
        forward the answer to the running gauntlet or, when ``elite_outcome``
        is given, take the finished gauntlet's result directly.

        Returns:
            The recorded Answer, or None if nothing was recorded
        """
        if self.state is not GameState.STAGE_ACTIVE:
            self.logger.warning(f"Ignoring answer submitted in state {self.state.value}")
            return None

        stage = self.current_stage

        if stage.type is StageType.ROULETTE:
            stage.completed = True
            self.session.completed = True
            self.session.completed_at = time.time()
            self._transition(GameState.COMPLETED, "roulette stage cleared")
            return None

        if stage.type is StageType.ELITE:
            if elite_outcome is not None:
                self._finish_elite(elite_outcome)
                return elite_outcome.last_answer
            if self.elite_controller is None:
                return None
            return self.elite_controller.submit_answer(answer_index, answer_text, time_spent_seconds)

        return self._answer_single(answer_index, answer_text, time_spent_seconds, timed_out=False)

    def _answer_single(self, answer_index: Optional[int], answer_text: Optional[str],
                       time_spent_seconds: Optional[float], timed_out: bool) -> Answer:
        stage = self.current_stage
        question_index = stage.question_indices[0]
        limit = self.settings.question_time_limit

        if time_spent_seconds is None:
            time_spent_seconds = self.question_timer.elapsed_time if self.question_timer else 0.0
        if self.question_timer is not None:
            self.question_timer.cancel()
            self.question_timer = None

        if timed_out:
            is_correct, points = False, 0
        else:
            result = validate_answer(
                self.questions[question_index], answer_index, answer_text,
                time_left=limit - time_spent_seconds, time_limit=limit,
            )
            is_correct, points = result.is_correct, result.points

        if stage.type is StageType.CAMPFIRE:
            is_correct = True

        payload = make_answer_payload(answer_index, answer_text)
        answer = Answer(
            question_index=question_index,
            stage_type=stage.type,
            answer=payload,
            is_correct=is_correct,
            points=points,
            time_spent_seconds=time_spent_seconds,
            timed_out=timed_out,
        )
        self._record_answers([answer])
        stage.completed = True

        if stage.type is StageType.CAMPFIRE:
            self.session.participated_in_opinion = True
            self.campfire_offer = None
            self.buff_offer = []
            self._emit_activity(question_index, payload, True, 0, time_spent_seconds, stage.type)
            self._transition(GameState.MAP_SELECTION, "campfire opinion recorded")
        elif is_correct:
            self.session.pending_answer = PendingAnswer(
                question_index, payload, True, time_spent_seconds, stage.type
            )
            self._offer_reward(stage.type)
        else:
            stage.failed = True
            self._emit_activity(question_index, payload, False, 0, time_spent_seconds, stage.type)
            self._transition(GameState.MAP_SELECTION, "incorrect answer")
        return answer

    def _record_answers(self, answers: Sequence[Answer]) -> None:
        session = self.session
        for answer in answers:
            session.answers.append(answer)
            session.total_questions += 1
            if answer.is_correct:
                session.correct_answers += 1
                session.current_streak += 1
            else:
                session.current_streak = 0
            session.max_streak = max(session.max_streak, session.current_streak)

    def _offer_reward(self, stage_type: StageType) -> None:
        self.reward_offer = self.reward_engine.create_offer(stage_type)
        self.session.waiting_for_reward = True
        self._transition(GameState.REWARD_BOX, f"{stage_type.value} stage cleared")

    def _finish_elite(self, outcome: EliteOutcome) -> None:
        if self.state is not GameState.STAGE_ACTIVE or self.current_stage.type is not StageType.ELITE:
            return

        stage = self.current_stage
        session = self.session
        self.elite_controller = None
        session.answers.extend(outcome.answers)
        session.total_questions += len(stage.question_indices)
        session.correct_answers += outcome.correct_count
        session.max_streak = max(session.max_streak, session.current_streak + outcome.correct_count)
        session.current_streak = session.current_streak + outcome.correct_count if outcome.success else 0
        stage.completed = True

        earlier = outcome.answers[:-1] if outcome.last_answer is not None else outcome.answers
        for answer in earlier:
            self._emit_activity(answer.question_index, answer.answer, answer.is_correct,
                                0, answer.time_spent_seconds, StageType.ELITE)

        last = outcome.last_answer
        if outcome.success:
            if last is not None:
                self.session.pending_answer = PendingAnswer(
                    last.question_index, last.answer, last.is_correct,
                    last.time_spent_seconds, StageType.ELITE,
                )
            self._offer_reward(StageType.ELITE)
        else:
            stage.failed = True
            if last is not None:
                self._emit_activity(last.question_index, last.answer, last.is_correct,
                                    0, last.time_spent_seconds, StageType.ELITE)
            self._transition(GameState.MAP_SELECTION,
                             f"elite stage failed after {outcome.correct_count} correct")

    def time_out_question(self) -> Optional[Answer]:
        """Resolve the active question as unanswered."""
        if self.state is not GameState.STAGE_ACTIVE:
            return None
        stage = self.current_stage
        if stage.type is StageType.ELITE:
            return self.elite_controller.time_out() if self.elite_controller else None
        if stage.type is StageType.CAMPFIRE:
            # An expired campfire question is resolved without an answer
            stage.completed = True
            self.skip_campfire()
            return None
        if stage.type is StageType.NORMAL:
            return self._answer_single(None, "", float(self.settings.question_time_limit), timed_out=True)
        return None

    def tick(self, seconds: float) -> None:
        """Advance the active stage's timers."""
        if self.state is not GameState.STAGE_ACTIVE:
            return
        if self.elite_controller is not None:
            self.elite_controller.tick(seconds)
        elif self.question_timer is not None and self.question_timer.tick(seconds):
            self.time_out_question()

    def pause_timer(self) -> None:
        if self.question_timer is not None:
            self.question_timer.pause()

    def resume_timer(self) -> None:
        if self.question_timer is not None:
            self.question_timer.resume()

    # ------------------------------------------------------------------
    # Rewards

    def select_reward_box(self, points: int) -> bool:
        """
        Grant a reward's points and return to the map.

        The only place base score grows for normal and elite stages. A call
        with no reward pending is a no-op.
        """
        if not self.session.waiting_for_reward:
            self.logger.warning("No reward pending; ignoring reward selection")
            return False

        session = self.session
        session.base_score += points
        self.current_stage.score = points

        pending = session.pending_answer
        if pending is not None:
            self._emit_activity(pending.question_index, pending.answer, pending.is_correct,
                                points, pending.time_spent_seconds, pending.stage_type)

        session.pending_answer = None
        session.waiting_for_reward = False
        self.reward_offer = None
        self._transition(GameState.MAP_SELECTION, f"reward of {points} points collected")
        return True

    def open_reward_box(self, box_index: int) -> Optional[int]:
        """Open one of the three sealed boxes and collect its points."""
        if not self.session.waiting_for_reward or self.reward_offer is None:
            return None
        points = self.reward_engine.open_box(self.reward_offer, box_index)
        if points is None:
            return None
        self.select_reward_box(points)
        return points

    def _campfire_active(self) -> bool:
        return (self.state is GameState.STAGE_ACTIVE
                and self.current_stage.type is StageType.CAMPFIRE)

    def choose_campfire_multiplier(self, index: int) -> Optional[int]:
        """
        Apply one of the campfire's offered multipliers to the running score.

        Returns:
            The new base score, or None if no multiplier can be taken
        """
        if not self._campfire_active() or self.campfire_offer is None:
            return None
        multiplier = self.reward_engine.choose_multiplier(self.campfire_offer, index)
        if multiplier is None:
            return None
        before = self.session.base_score
        self.session.base_score = apply_multiplier(before, multiplier)
        self.logger.info(f"Campfire multiplier x{multiplier}: {before} -> {self.session.base_score}")
        return self.session.base_score

    def select_buff(self, buff_id: BuffId) -> bool:
        """Take one buff from the campfire's offer; stacks with an existing one."""
        if not self._campfire_active() or buff_id not in self.buff_offer:
            return False
        existing = self.session.buffs.get(buff_id)
        if existing is not None:
            existing.stack_count += 1
            existing.active = True
        else:
            self.session.buffs[buff_id] = TemporaryBuff(buff_id)
        self.buff_offer = []
        self.logger.info(f"Buff {buff_id.value} selected (stacks: {self.session.buff_stacks(buff_id)})")
        return True

    def skip_campfire(self) -> bool:
        """Leave the active campfire without answering."""
        if not self._campfire_active():
            return False
        self.current_stage.skipped = True
        if self.question_timer is not None:
            self.question_timer.cancel()
            self.question_timer = None
        self.campfire_offer = None
        self.buff_offer = []
        self._transition(GameState.MAP_SELECTION, "campfire skipped")
        return True

    # ------------------------------------------------------------------
    # Roulette

    def start_roulette(self) -> Optional[RouletteEngine]:
        """Convert the activity bonus into tickets once the run has completed."""
        if self.state is not GameState.COMPLETED or self.session.final_score is not None:
            return None
        if self.roulette is None:
            self.roulette = RouletteEngine.for_session(
                self.session, ticket_cost=self.settings.roulette_ticket_cost, rng=self._rng
            )
            if self.roulette.finalized:
                self._finalize(self.roulette.score)
        return self.roulette

    def spin_roulette(self, choice_index: int) -> Optional[RouletteResult]:
        """Spend one ticket on one of the offered effects."""
        if self.roulette is None or self.roulette.finalized:
            return None
        result = self.roulette.choose(choice_index)
        if result is None:
            return None
        self.session.roulette_results.append(result)
        if self.roulette.finalized:
            self._finalize(self.roulette.score)
        return result

    def _finalize(self, score: int) -> None:
        session = self.session
        session.final_score = score
        end_stage = self.map.stages[self.map.end_node_id]
        end_stage.completed = True
        end_stage.score = score - session.base_score
        self.outbox.append(PublishScoreCommand(session.user_id, session.quiz_id, score))
        self.logger.info(
            f"Run {session.id} finalized with score {score}",
            extra={
                'event_type': 'run_finalized',
                'session_id': session.id,
                'base_score': session.base_score,
                'final_score': score,
                'timestamp': time.time()
            }
        )

    def _emit_activity(self, question_index: int, answer: AnswerPayload, is_correct: bool,
                       points: int, time_spent: float, stage_type: StageType) -> None:
        self.outbox.append(ActivityLogCommand(
            user_id=self.session.user_id,
            quiz_id=self.session.quiz_id,
            question_index=question_index,
            answer_data=answer.to_dict(),
            is_correct=is_correct,
            points=points,
            time_spent=time_spent,
            stage_type=stage_type,
        ))
