"""
End-of-run roulette: activity bonus, tickets and score effects.
"""
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .models import ActivityBonus, BuffId, GameSession, RouletteResult
from .rewards import apply_multiplier

CORRECT_ANSWER_POINTS = 50
STREAK_POINTS = 30
SPEED_THRESHOLD_SECONDS = 30
SPEED_BONUS = 200
PARTICIPATION_BONUS = 150
COMPLETION_BONUS = 300
WISDOM_POINTS_PER_CORRECT = 50
TICKET_COST = 500
OFFERED_EFFECTS = 3


class EffectKind(Enum):
    MULTIPLY = "multiply"
    ADD = "add"
    SUBTRACT = "subtract"


@dataclass(frozen=True)
class RouletteEffect:
    kind: EffectKind
    value: float
    message: str

    @property
    def favourable(self) -> bool:
        if self.kind is EffectKind.MULTIPLY:
            return self.value > 1
        return self.kind is EffectKind.ADD

    def apply(self, score: int) -> int:
        if self.kind is EffectKind.MULTIPLY:
            return apply_multiplier(score, self.value)
        if self.kind is EffectKind.ADD:
            return score + int(self.value)
        return max(0, score - int(self.value))


ROULETTE_EFFECTS: Tuple[RouletteEffect, ...] = (
    RouletteEffect(EffectKind.MULTIPLY, 1.5, "Great! Score x1.5"),
    RouletteEffect(EffectKind.MULTIPLY, 0.8, "Unlucky... score x0.8"),
    RouletteEffect(EffectKind.MULTIPLY, 2.0, "Jackpot! Score doubled"),
    RouletteEffect(EffectKind.MULTIPLY, 0.5, "Ouch! Score halved"),
    RouletteEffect(EffectKind.ADD, 500, "Bonus! +500 points"),
    RouletteEffect(EffectKind.SUBTRACT, 300, "Penalty! -300 points"),
)


def calculate_activity_bonus(session: GameSession) -> ActivityBonus:
    """Derive the activity bonus from a session's counters and buffs."""
    streak_bonus = session.max_streak * STREAK_POINTS
    passion = session.buff_stacks(BuffId.PASSION)
    if passion:
        streak_bonus *= 2 * passion

    completion_bonus = COMPLETION_BONUS
    wisdom = session.buff_stacks(BuffId.WISDOM)
    if wisdom:
        completion_bonus += WISDOM_POINTS_PER_CORRECT * wisdom * session.correct_answers

    return ActivityBonus(
        correct_answer_bonus=session.correct_answers * CORRECT_ANSWER_POINTS,
        streak_bonus=streak_bonus,
        speed_bonus=SPEED_BONUS if session.average_answer_time < SPEED_THRESHOLD_SECONDS else 0,
        participation_bonus=PARTICIPATION_BONUS if session.participated_in_opinion else 0,
        completion_bonus=completion_bonus,
    )


def ticket_count(activity_bonus: int, ticket_cost: int = TICKET_COST) -> int:
    return max(0, activity_bonus // ticket_cost)


class RouletteEngine:
    """
    Resolves roulette tickets against the running score.

    Every ticket gets a fresh triple of distinct effects; choosing one
    applies it and consumes the ticket. The run is finalized once no
    tickets remain.
    """

    def __init__(self, starting_score: int, tickets: int, luck_stacks: int = 0,
                 effects: Tuple[RouletteEffect, ...] = ROULETTE_EFFECTS, rng=None):
        self.logger = logging.getLogger(__name__)
        self.score = starting_score
        self.tickets_remaining = tickets
        self.total_tickets = tickets
        self.luck_stacks = luck_stacks
        self._effects = effects
        self._rng = rng or random
        self.results: List[RouletteResult] = []
        self.current_offer: Optional[List[RouletteEffect]] = None
        if self.tickets_remaining > 0:
            self.current_offer = self._draw_offer()
        self.logger.info(f"Roulette started with {tickets} tickets at score {starting_score}")

    @classmethod
    def for_session(cls, session: GameSession, ticket_cost: int = TICKET_COST,
                    rng=None) -> "RouletteEngine":
        bonus = calculate_activity_bonus(session)
        return cls(
            starting_score=session.base_score,
            tickets=ticket_count(bonus.total, ticket_cost),
            luck_stacks=session.buff_stacks(BuffId.LUCK),
            rng=rng,
        )

    @property
    def finalized(self) -> bool:
        return self.tickets_remaining == 0

    @property
    def final_score(self) -> Optional[int]:
        return self.score if self.finalized else None

    def _draw_offer(self) -> List[RouletteEffect]:
        offer = self._rng.sample(list(self._effects), OFFERED_EFFECTS)
        for _ in range(self.luck_stacks):
            unfavourable = [i for i, e in enumerate(offer) if not e.favourable]
            spare = [e for e in self._effects if e.favourable and e not in offer]
            if not unfavourable or not spare:
                break
            offer[unfavourable[0]] = self._rng.choice(spare)
        return offer

    def choose(self, index: int) -> Optional[RouletteResult]:
        """
        Apply one of the offered effects and consume a ticket.

        Returns:
            The RouletteResult, or None if no ticket is left or the index is invalid
        """
        if self.finalized or self.current_offer is None:
            self.logger.warning("No roulette tickets remaining")
            return None
        if not 0 <= index < len(self.current_offer):
            self.logger.warning(f"Roulette choice {index} out of range")
            return None

        effect = self.current_offer[index]
        before = self.score
        self.score = effect.apply(before)
        multiplier = effect.value if effect.kind is EffectKind.MULTIPLY else 1.0
        result = RouletteResult(multiplier=multiplier, bonus_points=self.score - before,
                                message=effect.message)
        self.results.append(result)

        self.tickets_remaining -= 1
        self.current_offer = self._draw_offer() if self.tickets_remaining > 0 else None
        self.logger.info(
            f"Roulette ticket used: {effect.message} ({before} -> {self.score}), "
            f"{self.tickets_remaining} left"
        )
        return result
