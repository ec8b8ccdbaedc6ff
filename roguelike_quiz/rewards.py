"""
Reward boxes granted after cleared stages, and campfire score multipliers.
"""
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .models import RoguelikeSettings, StageType

BOX_COUNT = 3

NORMAL_REWARD_RANGE = (80, 350)
ELITE_REWARD_RANGE = (250, 1000)
DEFAULT_REWARD_RANGE = (30, 180)

CAMPFIRE_MULTIPLIERS: Tuple[float, ...] = (0.8, 0.9, 1.0, 1.1, 1.2, 1.3, 1.5, 1.7, 1.8, 2.0)


@dataclass
class RewardOffer:
    """
    Three sealed choices for one reward event.

    Box values are drawn only when a box is opened; multiplier offers carry
    their values up front. At most one choice is ever taken.
    """
    stage_type: StageType
    box_count: int = BOX_COUNT
    multipliers: Tuple[float, ...] = ()
    chosen_index: Optional[int] = None
    value: Optional[float] = None

    @property
    def consumed(self) -> bool:
        return self.chosen_index is not None

    @property
    def is_multiplier_offer(self) -> bool:
        return bool(self.multipliers)


@dataclass
class RewardBoxEngine:
    """Creates and resolves reward offers."""
    ranges: Dict[StageType, Tuple[int, int]] = field(default_factory=lambda: {
        StageType.NORMAL: NORMAL_REWARD_RANGE,
        StageType.ELITE: ELITE_REWARD_RANGE,
    })
    default_range: Tuple[int, int] = DEFAULT_REWARD_RANGE
    multiplier_catalogue: Tuple[float, ...] = CAMPFIRE_MULTIPLIERS
    rng: object = None

    def __post_init__(self):
        self.logger = logging.getLogger(__name__)
        if self.rng is None:
            self.rng = random

    @classmethod
    def from_settings(cls, settings: RoguelikeSettings, rng=None) -> "RewardBoxEngine":
        return cls(
            ranges={
                StageType.NORMAL: tuple(settings.normal_reward_range),
                StageType.ELITE: tuple(settings.elite_reward_range),
            },
            default_range=tuple(settings.default_reward_range),
            rng=rng,
        )

    def reward_range(self, stage_type: StageType) -> Tuple[int, int]:
        return self.ranges.get(stage_type, self.default_range)

    def create_offer(self, stage_type: StageType) -> RewardOffer:
        return RewardOffer(stage_type=stage_type)

    def create_multiplier_offer(self) -> RewardOffer:
        multipliers = tuple(self.rng.sample(list(self.multiplier_catalogue), BOX_COUNT))
        return RewardOffer(stage_type=StageType.CAMPFIRE, multipliers=multipliers)

    def draw_points(self, stage_type: StageType) -> int:
        low, high = self.reward_range(stage_type)
        return self.rng.randint(low, high)

    def open_box(self, offer: RewardOffer, box_index: int) -> Optional[int]:
        """
        Open one sealed box.

        Returns:
            The drawn points, or None if the offer was already used or the
            index is out of range
        """
        if offer.consumed or offer.is_multiplier_offer:
            self.logger.warning("Reward offer already resolved or not a point offer")
            return None
        if not 0 <= box_index < offer.box_count:
            self.logger.warning(f"Reward box index {box_index} out of range")
            return None

        points = self.draw_points(offer.stage_type)
        offer.chosen_index = box_index
        offer.value = points
        self.logger.info(f"Opened {offer.stage_type.value} reward box {box_index}: {points} points")
        return points

    def choose_multiplier(self, offer: RewardOffer, index: int) -> Optional[float]:
        if offer.consumed or not offer.is_multiplier_offer:
            return None
        if not 0 <= index < len(offer.multipliers):
            return None
        offer.chosen_index = index
        offer.value = offer.multipliers[index]
        return offer.multipliers[index]


def apply_multiplier(score: int, multiplier: float) -> int:
    """Scale a running score; the result may be lower than the input."""
    # Rounding first keeps float noise such as 0.29 * 100 = 28.999... from losing a point
    return int(math.floor(round(score * multiplier, 6)))
