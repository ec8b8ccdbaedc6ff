"""
Procedural map generation for roguelike quiz runs.

A map is a sequence of rounds. The first round holds the start node, the
last round holds the end node, and every interior round holds a number of
stage nodes given by the selected layout. Edges only join adjacent rounds,
so the resulting graph is acyclic by construction.
"""
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .models import MapEdge, MapNode, Position, Question, Stage, StageType
from .question_pool import QuestionDeck, QuestionPoolIndexer

logger = logging.getLogger(__name__)

# Hand-authored layouts; entries that break the growth rule are filtered out at selection time
PREDEFINED_LAYOUTS: Tuple[Tuple[int, ...], ...] = (
    (1, 2, 3, 2, 1),
    (1, 2, 2, 2, 1),
    (1, 2, 4, 2, 1),
    (1, 3, 3, 2, 1),
    (1, 2, 4, 3, 4, 2, 1),
    (1, 2, 3, 4, 3, 2, 1),
    (1, 3, 2, 1, 2, 3, 1),
    (1, 2, 4, 5, 4, 2, 1),
    (1, 3, 1, 4, 1, 3, 1),
    (1, 2, 3, 5, 4, 2, 1),
    (1, 4, 2, 3, 2, 4, 1),
    (1, 1, 3, 5, 3, 1, 1),
    (1, 2, 2, 4, 2, 2, 1),
    (1, 3, 3, 2, 3, 3, 1),
    (1, 2, 3, 4, 3, 4, 3, 2, 1),
    (1, 2, 4, 3, 2, 3, 4, 2, 1),
    (1, 2, 2, 3, 4, 3, 2, 2, 1),
)
DEFAULT_LAYOUT: Tuple[int, ...] = (1, 2, 4, 3, 4, 2, 1)

NORMAL_RATIO = 0.60
ELITE_RATIO = 0.25
CAMPFIRE_RATIO = 0.15
MIN_INTERIOR_ROUNDS_FOR_GUARANTEE = 3

DOUBLE_EDGE_PROBABILITY = 0.3
INCOMING_EDGE_PENALTY = 100

ELITE_QUESTION_COUNT = 3

NODE_WIDTH = 150
HORIZONTAL_SPACING = 50
VERTICAL_SPACING = 150

START_NODE_ID = "node-0"
END_NODE_ID = "node-end"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class RoguelikeMap:
    """Generated map: nodes, edges and the stage bound to each node."""
    nodes: Dict[str, MapNode] = field(default_factory=dict)
    edges: List[MapEdge] = field(default_factory=list)
    stages: Dict[str, Stage] = field(default_factory=dict)
    rounds: List[List[str]] = field(default_factory=list)
    layout: Tuple[int, ...] = ()
    start_node_id: str = START_NODE_ID
    end_node_id: str = END_NODE_ID

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def outgoing(self, node_id: str) -> List[str]:
        return [e.target for e in self.edges if e.source == node_id]

    def incoming(self, node_id: str) -> List[str]:
        return [e.source for e in self.edges if e.target == node_id]

    def has_edge(self, source: str, target: str) -> bool:
        return any(e.source == source and e.target == target for e in self.edges)

    def stage_connections(self) -> Dict[str, List[str]]:
        """Adjacency list keyed by node id."""
        connections: Dict[str, List[str]] = {node_id: [] for node_id in self.nodes}
        for edge in self.edges:
            connections[edge.source].append(edge.target)
        return connections

    def interior_node_ids(self) -> List[str]:
        return [node_id for round_ids in self.rounds[1:-1] for node_id in round_ids]


def is_valid_layout(layout: Sequence[int]) -> bool:
    """Check the start/end and growth-ratio rules for a round layout."""
    if len(layout) < 2 or layout[0] != 1 or layout[-1] != 1:
        return False
    for current, following in zip(layout, layout[1:]):
        if following > current * 2 or following < math.ceil(current / 2):
            return False
    return True


class MapLayoutSelector:
    """Chooses the per-round node counts for a map."""

    def __init__(self, layouts: Sequence[Sequence[int]] = PREDEFINED_LAYOUTS, rng=None):
        self._layouts = [tuple(layout) for layout in layouts]
        self._rng = rng or random

    @staticmethod
    def fallback_layout(total_rounds: int) -> Tuple[int, ...]:
        """Hard-coded layout of the requested length; always valid."""
        if total_rounds == len(DEFAULT_LAYOUT):
            return DEFAULT_LAYOUT
        interior = [2 if i % 2 == 0 else 3 for i in range(total_rounds - 2)]
        if interior:
            interior[-1] = 2
        return (1, *interior, 1)

    def select(self, total_rounds: int) -> Tuple[int, ...]:
        if total_rounds < 2:
            raise ValueError(f"A map needs at least 2 rounds, got {total_rounds}")

        candidates = [
            layout for layout in self._layouts
            if len(layout) == total_rounds and is_valid_layout(layout)
        ]
        if candidates:
            layout = self._rng.choice(candidates)
            logger.info(f"Selected map layout {list(layout)}")
            return layout

        layout = self.fallback_layout(total_rounds)
        logger.warning(
            f"No predefined layout for {total_rounds} rounds, using fallback {list(layout)}"
        )
        return layout


class StageTypeAllocator:
    """Builds the shuffled multiset of stage types for the interior nodes."""

    def __init__(self, rng=None):
        self._rng = rng or random

    def allocate_counts(
        self,
        interior_nodes: int,
        interior_rounds: int,
        has_graded_questions: bool,
        has_opinion_questions: bool,
    ) -> Dict[StageType, int]:
        num_campfire = round_half_up(interior_nodes * CAMPFIRE_RATIO)
        num_elite = round_half_up(interior_nodes * ELITE_RATIO)
        num_normal = interior_nodes - num_campfire - num_elite

        if not has_opinion_questions:
            num_normal += num_campfire
            num_campfire = 0

        if not has_graded_questions:
            num_normal += num_elite
            num_elite = 0

        guarantee = interior_rounds >= MIN_INTERIOR_ROUNDS_FOR_GUARANTEE
        if guarantee and num_campfire == 0 and has_opinion_questions and num_normal > 0:
            num_campfire = 1
            num_normal -= 1
        if guarantee and num_elite == 0 and has_graded_questions and num_normal > 0:
            num_elite = 1
            num_normal -= 1

        counts = {
            StageType.NORMAL: max(0, num_normal),
            StageType.ELITE: num_elite,
            StageType.CAMPFIRE: num_campfire,
        }
        logger.info(
            f"Stage allocation: normal={counts[StageType.NORMAL]}, "
            f"elite={counts[StageType.ELITE]}, campfire={counts[StageType.CAMPFIRE]} "
            f"(interior nodes {interior_nodes})"
        )
        return counts

    def build_pool(
        self,
        interior_nodes: int,
        interior_rounds: int,
        has_graded_questions: bool,
        has_opinion_questions: bool,
    ) -> List[StageType]:
        counts = self.allocate_counts(
            interior_nodes, interior_rounds, has_graded_questions, has_opinion_questions
        )
        pool: List[StageType] = []
        for stage_type in (StageType.CAMPFIRE, StageType.ELITE, StageType.NORMAL):
            pool.extend([stage_type] * counts[stage_type])
        self._rng.shuffle(pool)
        return pool


def calculate_natural_position(round_index: int, node_index: int,
                               nodes_in_round: int, total_rounds: int) -> Position:
    """
    Screen position for a node.

    Deterministic in (round_index, node_index). Jitter and spread are
    bounded well below the node spacing, so x-order within a round follows
    node_index.
    """
    base_y = (total_rounds - 1 - round_index) * VERTICAL_SPACING
    center = (nodes_in_round - 1) / 2
    base_x = (node_index - center) * (NODE_WIDTH + HORIZONTAL_SPACING)

    seed = round_index * 1000 + node_index
    pseudo_random_1 = math.sin(seed * 0.1) * 0.5 + 0.5
    pseudo_random_2 = math.cos(seed * 0.2) * 0.5 + 0.5
    pseudo_random_3 = math.sin(seed * 0.15 + 100) * 0.5 + 0.5

    wave_offset = math.sin(round_index * 0.8) * 60
    jitter = (pseudo_random_1 - 0.5) * 2 * 40
    spread_direction = 1 if node_index > center else -1
    spread = spread_direction * abs(node_index - center) * 15 * pseudo_random_2

    height_offset = math.sin(node_index * 1.2 + round_index * 0.5) * 30 * pseudo_random_3
    path_curve = math.cos(round_index * 0.6 + node_index * 0.3) * 25

    return Position(base_x + wave_offset + jitter + spread, base_y + height_offset + path_curve)


def edges_cross(source_a: MapNode, target_a: MapNode,
                source_b: MapNode, target_b: MapNode) -> bool:
    """True when the x-order of the sources is opposite to that of the targets."""
    return (
        (source_a.position.x < source_b.position.x and target_a.position.x > target_b.position.x)
        or (source_a.position.x > source_b.position.x and target_a.position.x < target_b.position.x)
    )


class MapGraphBuilder:
    """Lays out nodes, assigns stages and questions, and connects rounds."""

    def __init__(
        self,
        rng=None,
        layout_selector: Optional[MapLayoutSelector] = None,
        allocator: Optional[StageTypeAllocator] = None,
        double_edge_probability: float = DOUBLE_EDGE_PROBABILITY,
    ):
        self.logger = logging.getLogger(__name__)
        self._rng = rng or random
        self.layout_selector = layout_selector or MapLayoutSelector(rng=self._rng)
        self.allocator = allocator or StageTypeAllocator(rng=self._rng)
        self.double_edge_probability = double_edge_probability

    def build(self, questions: Sequence[Question], total_rounds: int = 7,
              layout: Optional[Sequence[int]] = None) -> RoguelikeMap:
        """
        Generate a complete map for the given questions.

        Args:
            questions: The quiz's ordered question list
            total_rounds: Rounds including start and end, used when no layout is given
            layout: Explicit round layout; must satisfy ``is_valid_layout``

        Returns:
            The generated map, empty when the quiz has no questions at all
        """
        pools = QuestionPoolIndexer(questions)
        if pools.is_empty():
            self.logger.error("Cannot generate a map for a quiz without questions")
            return RoguelikeMap()

        if layout is None:
            layout = self.layout_selector.select(total_rounds)
        elif not is_valid_layout(layout):
            raise ValueError(f"Invalid map layout: {list(layout)}")
        layout = tuple(layout)

        game_map = RoguelikeMap(layout=layout, rounds=[[] for _ in layout])
        self._place_nodes(game_map, pools)
        self._connect_rounds(game_map)
        self._repair_connectivity(game_map)
        self._recenter(game_map)

        self.logger.info(
            f"Generated map with {len(game_map.nodes)} nodes and {len(game_map.edges)} edges",
            extra={
                'event_type': 'map_generated',
                'layout': list(layout),
                'node_count': len(game_map.nodes),
                'edge_count': len(game_map.edges),
            }
        )
        return game_map

    def _add_node(self, game_map: RoguelikeMap, node: MapNode, stage: Stage) -> None:
        game_map.nodes[node.id] = node
        game_map.stages[node.id] = stage
        game_map.rounds[node.round_index].append(node.id)

    def _place_nodes(self, game_map: RoguelikeMap, pools: QuestionPoolIndexer) -> None:
        layout = game_map.layout
        total_rounds = len(layout)

        start = MapNode(START_NODE_ID, StageType.START,
                        Position(0, (total_rounds - 1) * VERTICAL_SPACING), 0)
        self._add_node(game_map, start, Stage(StageType.START))

        graded = pools.graded
        graded_deck = QuestionDeck(graded, rng=self._rng)
        opinion_deck = QuestionDeck(pools.opinion, rng=self._rng)

        interior_rounds = total_rounds - 2
        interior_nodes = sum(layout[1:-1])
        type_pool = self.allocator.build_pool(
            interior_nodes, interior_rounds, bool(graded), bool(pools.opinion)
        )

        pool_index = 0
        node_counter = 1
        for round_index in range(1, total_rounds - 1):
            nodes_in_round = layout[round_index]
            for node_index in range(nodes_in_round):
                if pool_index < len(type_pool):
                    if round_index == 1 and type_pool[pool_index] is StageType.ELITE:
                        self._defer_elite(type_pool, pool_index)
                    stage_type = type_pool[pool_index]
                    pool_index += 1
                else:
                    stage_type = StageType.NORMAL

                stage_type, question_indices = self._assign_questions(
                    stage_type, graded_deck, opinion_deck
                )

                node_id = f"node-{node_counter}"
                node_counter += 1
                node = MapNode(
                    node_id, stage_type,
                    calculate_natural_position(round_index, node_index, nodes_in_round, total_rounds),
                    round_index,
                )
                self._add_node(game_map, node, Stage(stage_type, question_indices))

        end = MapNode(END_NODE_ID, StageType.END, Position(0, 0), total_rounds - 1)
        self._add_node(game_map, end, Stage(StageType.ROULETTE))

    def _defer_elite(self, type_pool: List[StageType], index: int) -> None:
        """Swap an elite out of the first interior round with the next normal entry."""
        for later in range(index + 1, len(type_pool)):
            if type_pool[later] is StageType.NORMAL:
                type_pool[index], type_pool[later] = type_pool[later], type_pool[index]
                self.logger.debug(f"Moved elite stage from pool slot {index} to {later}")
                return
        type_pool[index] = StageType.NORMAL
        self.logger.debug(f"No later normal stage to swap with; elite at slot {index} downgraded")

    def _assign_questions(self, stage_type: StageType, graded_deck: QuestionDeck,
                          opinion_deck: QuestionDeck) -> Tuple[StageType, List[int]]:
        if stage_type is StageType.ELITE:
            if len(graded_deck) == 0:
                self.logger.warning("Elite question pool is empty, downgrading node to normal")
                stage_type = StageType.NORMAL
            else:
                allow_duplicates = len(graded_deck) < ELITE_QUESTION_COUNT
                return stage_type, graded_deck.draw(ELITE_QUESTION_COUNT, allow_duplicates)

        if stage_type is StageType.CAMPFIRE:
            return stage_type, opinion_deck.draw(1)

        if len(graded_deck) == 0 and len(opinion_deck) > 0:
            # Opinion-only quiz: the only playable stage is a campfire
            return StageType.CAMPFIRE, opinion_deck.draw(1)
        return StageType.NORMAL, graded_deck.draw(1)

    def _sorted_round(self, game_map: RoguelikeMap, round_index: int) -> List[MapNode]:
        return sorted((game_map.nodes[n] for n in game_map.rounds[round_index]),
                      key=lambda node: node.position.x)

    def _connect_rounds(self, game_map: RoguelikeMap) -> None:
        for round_index in range(len(game_map.layout) - 1):
            sources = self._sorted_round(game_map, round_index)
            targets = self._sorted_round(game_map, round_index + 1)
            if not targets:
                continue

            committed: List[MapEdge] = []
            for source in sources:
                if source.kind is StageType.START and len(targets) >= 2:
                    max_connections = 2
                else:
                    max_connections = 2 if self._rng.random() < self.double_edge_probability else 1

                candidates = sorted(
                    targets,
                    key=lambda target: (
                        abs(target.position.x - source.position.x)
                        + len(game_map.incoming(target.id)) * INCOMING_EDGE_PENALTY
                    ),
                )

                made = 0
                for target in candidates:
                    if made >= max_connections:
                        break
                    if game_map.has_edge(source.id, target.id):
                        continue
                    if self._crosses_committed(game_map, source, target, committed):
                        continue
                    edge = MapEdge(source.id, target.id)
                    game_map.edges.append(edge)
                    committed.append(edge)
                    made += 1

                if made == 0:
                    closest = min(targets, key=lambda t: abs(t.position.x - source.position.x))
                    edge = MapEdge(source.id, closest.id, fallback=True)
                    game_map.edges.append(edge)
                    committed.append(edge)
                    self.logger.debug(f"Fallback edge {source.id} -> {closest.id}")

    def _crosses_committed(self, game_map: RoguelikeMap, source: MapNode,
                           target: MapNode, committed: List[MapEdge]) -> bool:
        for other in committed:
            if other.source == source.id:
                continue
            other_source = game_map.nodes[other.source]
            other_target = game_map.nodes[other.target]
            if edges_cross(source, target, other_source, other_target):
                return True
        return False

    def _nearest(self, game_map: RoguelikeMap, node: MapNode, round_index: int) -> Optional[MapNode]:
        candidates = [game_map.nodes[n] for n in game_map.rounds[round_index]]
        if not candidates:
            return None
        return min(candidates, key=lambda c: abs(c.position.x - node.position.x))

    def _repair_connectivity(self, game_map: RoguelikeMap) -> None:
        total_rounds = len(game_map.layout)

        for round_index in range(1, total_rounds - 1):
            for node_id in game_map.rounds[round_index]:
                if game_map.incoming(node_id):
                    continue
                node = game_map.nodes[node_id]
                previous = self._nearest(game_map, node, round_index - 1)
                if previous is not None:
                    game_map.edges.append(MapEdge(previous.id, node_id, fallback=True))
                    self.logger.info(f"Repaired missing incoming edge: {previous.id} -> {node_id}")

        for round_index in range(0, total_rounds - 2):
            for node_id in game_map.rounds[round_index]:
                if game_map.outgoing(node_id):
                    continue
                node = game_map.nodes[node_id]
                following = self._nearest(game_map, node, round_index + 1)
                if following is not None:
                    game_map.edges.append(MapEdge(node_id, following.id, fallback=True))
                    self.logger.info(f"Repaired missing outgoing edge: {node_id} -> {following.id}")

        for node_id in game_map.rounds[total_rounds - 2]:
            if not game_map.has_edge(node_id, game_map.end_node_id):
                game_map.edges.append(MapEdge(node_id, game_map.end_node_id))

    def _recenter(self, game_map: RoguelikeMap) -> None:
        interior = [game_map.nodes[n] for n in game_map.interior_node_ids()]
        if interior:
            xs = [node.position.x for node in interior]
            offset = -(min(xs) + max(xs)) / 2
            for node in interior:
                node.position = Position(node.position.x + offset, node.position.y)
        for node_id in (game_map.start_node_id, game_map.end_node_id):
            node = game_map.nodes[node_id]
            node.position = Position(0, node.position.y)


def generate_map(questions: Sequence[Question], total_rounds: int = 7, rng=None,
                 double_edge_probability: float = DOUBLE_EDGE_PROBABILITY) -> RoguelikeMap:
    """Convenience wrapper around ``MapGraphBuilder.build``."""
    builder = MapGraphBuilder(rng=rng, double_edge_probability=double_edge_probability)
    return builder.build(questions, total_rounds)
