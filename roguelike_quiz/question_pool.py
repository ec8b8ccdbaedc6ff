"""
Question pool indexing and drawing for map generation.
"""
import logging
import random
from typing import Dict, List, Sequence, Tuple

from .models import Question, QuestionKind

logger = logging.getLogger(__name__)

QuestionPool = Tuple[int, ...]


class QuestionPoolIndexer:
    """Partitions a quiz's questions into index pools by question kind."""

    def __init__(self, questions: Sequence[Question]):
        self._pools: Dict[QuestionKind, QuestionPool] = {
            kind: tuple(i for i, q in enumerate(questions) if q.kind is kind)
            for kind in QuestionKind
        }
        logger.debug(
            "Indexed question pools: "
            + ", ".join(f"{k.value}={len(v)}" for k, v in self._pools.items())
        )

    def pool(self, kind: QuestionKind) -> QuestionPool:
        return self._pools[kind]

    @property
    def multiple_choice(self) -> QuestionPool:
        return self._pools[QuestionKind.MULTIPLE_CHOICE]

    @property
    def short_answer(self) -> QuestionPool:
        return self._pools[QuestionKind.SHORT_ANSWER]

    @property
    def opinion(self) -> QuestionPool:
        return self._pools[QuestionKind.OPINION]

    @property
    def graded(self) -> QuestionPool:
        """Union of the multiple-choice and short-answer pools."""
        return self.multiple_choice + self.short_answer

    def is_empty(self) -> bool:
        return not any(self._pools.values())


class QuestionDeck:
    """
    Draws question indices from a pool.

    Indices come off a shuffled deck so a question is not reused across
    stages until every index in the pool has been handed out; the deck is
    then reshuffled.
    """

    def __init__(self, pool: Sequence[int], rng=None):
        self._pool = list(pool)
        self._rng = rng or random
        self._deck: List[int] = []

    def __len__(self) -> int:
        return len(self._pool)

    def _refill(self) -> None:
        self._deck = list(self._pool)
        self._rng.shuffle(self._deck)

    def draw(self, count: int, allow_duplicates: bool = False) -> List[int]:
        """
        Draw ``count`` indices.

        Without duplicates at most ``len(pool)`` distinct indices are
        returned. With duplicates, indices are sampled independently from
        the whole pool.
        """
        if not self._pool or count <= 0:
            return []

        if allow_duplicates:
            return [self._rng.choice(self._pool) for _ in range(count)]

        selected: List[int] = []
        while len(selected) < min(count, len(self._pool)):
            if not self._deck:
                self._refill()
            index = self._deck.pop()
            if index in selected:
                # A reshuffle can hand back an index already picked for this stage
                continue
            selected.append(index)
        return selected
