"""
Vanishing-Edges Tag - Core Data Structures

This module contains the grid model, movement rules, shortest-path search and
turn-based session state for a two-player pursuit game played on a square grid
whose edges are removed as play proceeds.
"""

import logging
import math
import random
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from edgetag.config import BoardConfig, BotConfig, GameDefaults, ModeConfig

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]


class ConfigurationError(ValueError):
    """Raised when a session is configured with values that cannot produce a board."""


class Direction(Enum):
    """Directional commands, in the order neighbours are explored."""
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"

    @property
    def delta(self) -> Tuple[int, int]:
        return _DIRECTION_DELTAS[self]

    def apply(self, cell: Cell) -> Cell:
        """Return the cell one step away from `cell` in this direction."""
        dx, dy = self.delta
        return (cell[0] + dx, cell[1] + dy)


_DIRECTION_DELTAS = {
    Direction.LEFT: (-1, 0),
    Direction.RIGHT: (1, 0),
    Direction.UP: (0, -1),
    Direction.DOWN: (0, 1),
}


class Role(Enum):
    """The two tokens on the board."""
    PURSUER = "pursuer"
    EVADER = "evader"

    @property
    def opponent(self) -> "Role":
        return Role.EVADER if self is Role.PURSUER else Role.PURSUER


class GameStatus(Enum):
    """Enumeration for game status states."""
    IN_PROGRESS = "in_progress"
    WON = "won"
    LOST = "lost"
    STALEMATE = "stalemate"


class TerminalCause(Enum):
    """Why a finished game ended."""
    CAPTURED = "captured"
    SEPARATED = "separated"
    ESCAPED = "escaped"


@dataclass(frozen=True)
class Edge:
    """
    Represents an undirected edge between two orthogonally adjacent cells.

    Endpoints are stored in canonical order, so Edge(a, b) == Edge(b, a).

    Attributes:
        a: Left or top endpoint (the anchor cell)
        b: Right or bottom endpoint
    """
    a: Cell
    b: Cell

    def __post_init__(self):
        """Validate and normalize edge data after initialization."""
        if self.a == self.b:
            raise ValueError("Self-loops are not allowed")
        if abs(self.a[0] - self.b[0]) + abs(self.a[1] - self.b[1]) != 1:
            raise ValueError(f"Cells {self.a} and {self.b} are not orthogonally adjacent")
        if self.b < self.a:
            first, second = self.b, self.a
            object.__setattr__(self, "a", first)
            object.__setattr__(self, "b", second)

    @property
    def anchor(self) -> Cell:
        return self.a

    def to_dict(self) -> Dict[str, List[int]]:
        return {"from": list(self.a), "to": list(self.b)}


class GraphBoard:
    """
    Manages the grid graph: N*N cells and the edges joining orthogonal neighbours.

    The set of edges never grows after initialization; edges are only deactivated.
    """

    def __init__(self, size: Optional[int] = None):
        """
        Initialize a board, optionally building an n x n grid right away.

        Args:
            size: Grid side length, or None for an empty board
        """
        self.size = 0
        # Edge -> active flag, in row-major order of the anchor cell
        self.edges: Dict[Edge, bool] = {}
        # Adjacency list over active edges only
        self._adjacency: Dict[Cell, Set[Cell]] = {}

        if size is not None:
            self.initialize(size)

    def initialize(self, size: int) -> None:
        """
        (Re)build the full grid with every edge active.

        Args:
            size: Grid side length

        Raises:
            ConfigurationError: If the size is outside the supported range
        """
        if isinstance(size, bool) or not isinstance(size, int):
            raise ConfigurationError(f"Grid size must be an integer, got {size!r}")
        if not (BoardConfig.MIN_SIZE <= size <= BoardConfig.MAX_SIZE):
            raise ConfigurationError(
                f"Grid size must be between {BoardConfig.MIN_SIZE} and {BoardConfig.MAX_SIZE}, got {size}")

        self.size = size
        self.edges.clear()
        self._adjacency.clear()

        for y in range(size):
            for x in range(size):
                self._adjacency[(x, y)] = set()

        for y in range(size):
            for x in range(size):
                # Connect to right neighbor
                if x < size - 1:
                    self._add_edge(Edge((x, y), (x + 1, y)))

                # Connect to bottom neighbor
                if y < size - 1:
                    self._add_edge(Edge((x, y), (x, y + 1)))

    def _add_edge(self, edge: Edge) -> None:
        self.edges[edge] = True
        self._adjacency[edge.a].add(edge.b)
        self._adjacency[edge.b].add(edge.a)

    def in_bounds(self, cell: Cell) -> bool:
        x, y = cell
        return 0 <= x < self.size and 0 <= y < self.size

    def cells(self) -> List[Cell]:
        """All cells in row-major order."""
        return [(x, y) for y in range(self.size) for x in range(self.size)]

    def edge_between(self, a: Cell, b: Cell) -> Optional[Edge]:
        """Return the board edge joining two cells, or None if they are not neighbours."""
        if a == b or not (self.in_bounds(a) and self.in_bounds(b)):
            return None
        if abs(a[0] - b[0]) + abs(a[1] - b[1]) != 1:
            return None
        return Edge(a, b)

    def is_active(self, edge: Edge) -> bool:
        return self.edges.get(edge, False)

    def is_connected(self, a: Cell, b: Cell) -> bool:
        """
        Check whether a single step from `a` to `b` is possible.

        Returns:
            True if the cells are adjacent, in range and joined by an active edge
        """
        if not (self.in_bounds(a) and self.in_bounds(b)):
            return False
        return b in self._adjacency[a]

    def deactivate(self, edge: Edge) -> bool:
        """
        Mark an edge inactive.

        Args:
            edge: Edge to remove from play

        Returns:
            True if the edge was active and is now inactive, False for a no-op
        """
        if not self.edges.get(edge, False):
            return False

        self.edges[edge] = False
        self._adjacency[edge.a].discard(edge.b)
        self._adjacency[edge.b].discard(edge.a)
        return True

    def active_edges(self) -> List[Edge]:
        """Currently active edges, in stable row-major order."""
        return [edge for edge, active in self.edges.items() if active]

    def get_adjacent_cells(self, cell: Cell) -> Set[Cell]:
        """
        Get all cells reachable from `cell` in one step.

        Raises:
            ValueError: If the cell is off the board
        """
        if not self.in_bounds(cell):
            raise ValueError(f"Cell {cell} is off the board")

        return set(self._adjacency[cell])

    def degree(self, cell: Cell) -> int:
        return len(self._adjacency.get(cell, ()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "edges": [
                {**edge.to_dict(), "active": active}
                for edge, active in self.edges.items()
            ]
        }


def legal_moves(board: GraphBoard, cell: Cell) -> List[Cell]:
    """
    Enumerate single-step moves from a cell.

    Returns:
        Neighbouring cells joined to `cell` by an active edge, in
        left, right, up, down order. Empty for an isolated cell.
    """
    moves = []
    for direction in Direction:
        target = direction.apply(cell)
        if board.is_connected(cell, target):
            moves.append(target)
    return moves


def shortest_path(board: GraphBoard, start: Cell, goal: Cell) -> Optional[List[Cell]]:
    """
    Find a shortest path over active edges using BFS.

    Neighbours are discovered in `legal_moves` order and the first discovery of a
    cell fixes its predecessor, so the path returned among equally short paths is
    deterministic.

    Args:
        board: Board to search
        start: First cell of the path
        goal: Last cell of the path

    Returns:
        List of cells from start to goal inclusive, or None if unreachable
    """
    if not (board.in_bounds(start) and board.in_bounds(goal)):
        return None
    if start == goal:
        return [start]

    parents: Dict[Cell, Optional[Cell]] = {start: None}
    queue = deque([start])

    while queue:
        current = queue.popleft()
        for move in legal_moves(board, current):
            if move in parents:
                continue

            parents[move] = current
            if move == goal:
                return _trace_path(parents, goal)
            queue.append(move)

    return None


def _trace_path(parents: Dict[Cell, Optional[Cell]], goal: Cell) -> List[Cell]:
    path = [goal]
    while parents[path[-1]] is not None:
        path.append(parents[path[-1]])
    path.reverse()
    return path


def path_distance(board: GraphBoard, start: Cell, goal: Cell) -> Optional[int]:
    """Number of steps on a shortest path, or None if unreachable."""
    path = shortest_path(board, start, goal)
    if path is None:
        return None
    return len(path) - 1


def bfs_distances(board: GraphBoard, start: Cell) -> Dict[Cell, int]:
    """Step counts from `start` to every reachable cell."""
    distances = {start: 0}
    queue = deque([start])

    while queue:
        current = queue.popleft()
        for move in legal_moves(board, current):
            if move not in distances:
                distances[move] = distances[current] + 1
                queue.append(move)

    return distances


def separates(board: GraphBoard, edge: Edge, start: Cell, goal: Cell) -> bool:
    """
    Check whether deactivating `edge` would leave no path from `start` to `goal`.

    The board is not modified; the search simply refuses to cross `edge`.
    """
    seen = {start}
    queue = deque([start])

    while queue:
        current = queue.popleft()
        if current == goal:
            return False
        for move in legal_moves(board, current):
            if move in seen or Edge(current, move) == edge:
                continue
            seen.add(move)
            queue.append(move)

    return True


def removal_weight(edge: Edge, size: int) -> int:
    """
    Center-biased removal weight of an edge, from 1 (rim) to 3 (exact center).

    The weight is taken at the edge's anchor cell.
    """
    center = (size - 1) / 2
    x, y = edge.anchor
    closeness = 1 - (abs(x - center) + abs(y - center)) / (size - 1)
    return math.floor(closeness * 2) + 1


@dataclass
class GameSettings:
    """
    Session configuration, validated on construction.

    Attributes:
        grid_size: Grid side length
        mode: "offense" (human pursues), "defense" (human evades) or "twoPlayer"
        difficulty: Computer opponent level, see BotConfig.DIFFICULTIES
        removal_policy: "uniform" or "center" weighted edge removal
        min_separation: Minimum column distance between the tokens at start
        initial_removals: Edges removed before the first move; None uses the mode default
        lookahead_depth: Mobility lookahead of the hard bot
        separation_outcome: "escape" or "stalemate"; None uses the mode default
    """
    grid_size: int = GameDefaults.GRID_SIZE
    mode: str = GameDefaults.MODE
    difficulty: str = GameDefaults.DIFFICULTY
    removal_policy: str = GameDefaults.REMOVAL_POLICY
    min_separation: Optional[int] = None
    initial_removals: Optional[int] = None
    lookahead_depth: int = GameDefaults.LOOKAHEAD_DEPTH
    separation_outcome: Optional[str] = None

    def __post_init__(self):
        """Validate settings and fill mode-dependent defaults."""
        for name in ("grid_size", "lookahead_depth", "min_separation", "initial_removals"):
            value = getattr(self, name)
            if value is None and name in ("min_separation", "initial_removals"):
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")

        if not (BoardConfig.MIN_SIZE <= self.grid_size <= BoardConfig.MAX_SIZE):
            raise ConfigurationError(
                f"Grid size must be between {BoardConfig.MIN_SIZE} and {BoardConfig.MAX_SIZE}, got {self.grid_size}")
        if self.mode not in ModeConfig.MODES:
            raise ConfigurationError(f"Unknown mode {self.mode!r}, expected one of {ModeConfig.MODES}")
        if self.difficulty not in BotConfig.DIFFICULTIES:
            raise ConfigurationError(
                f"Unknown difficulty {self.difficulty!r}, expected one of {BotConfig.DIFFICULTIES}")
        if self.removal_policy not in ModeConfig.REMOVAL_POLICIES:
            raise ConfigurationError(
                f"Unknown removal policy {self.removal_policy!r}, expected one of {ModeConfig.REMOVAL_POLICIES}")
        if not (0 <= self.lookahead_depth <= BoardConfig.MAX_LOOKAHEAD_DEPTH):
            raise ConfigurationError(
                f"Lookahead depth must be between 0 and {BoardConfig.MAX_LOOKAHEAD_DEPTH}")

        if self.min_separation is None:
            self.min_separation = math.floor(self.grid_size * GameDefaults.MIN_SEPARATION_RATIO)
        if not (0 <= self.min_separation <= self.grid_size - 1):
            raise ConfigurationError(
                f"Minimum separation must be between 0 and {self.grid_size - 1}, got {self.min_separation}")

        if self.initial_removals is not None and self.initial_removals < 0:
            raise ConfigurationError("Initial removals cannot be negative")

        if self.separation_outcome is None:
            self.separation_outcome = ModeConfig.SEPARATION_OUTCOME[self.mode]
        if self.separation_outcome not in ModeConfig.SEPARATION_OUTCOMES:
            raise ConfigurationError(
                f"Unknown separation outcome {self.separation_outcome!r}, "
                f"expected one of {ModeConfig.SEPARATION_OUTCOMES}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameSettings":
        """Build settings from a JSON-style mapping, ignoring unknown keys."""
        known = {key: value for key, value in data.items() if key in cls.__dataclass_fields__}
        return cls(**known)

    @property
    def human_roles(self) -> List[Role]:
        human = ModeConfig.HUMAN_ROLES[self.mode]
        if human is None:
            return [Role.PURSUER, Role.EVADER]
        return [Role(human)]

    @property
    def computer_role(self) -> Optional[Role]:
        human = ModeConfig.HUMAN_ROLES[self.mode]
        if human is None:
            return None
        return Role(human).opponent

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grid_size": self.grid_size,
            "mode": self.mode,
            "difficulty": self.difficulty,
            "removal_policy": self.removal_policy,
            "min_separation": self.min_separation,
            "initial_removals": self.initial_removals,
            "lookahead_depth": self.lookahead_depth,
            "separation_outcome": self.separation_outcome,
        }


class GameState:
    """
    Represents the complete state of one session.

    Attributes:
        settings: Session configuration
        board: The grid and its remaining edges
        positions: Current cell of each token
        status: Current game status, from the human's point of view
        cause: Why the game ended, or None while in progress
        winner: Winning role, or None while in progress or on a stalemate
        turn: Number of accepted moves
        to_move: Role whose input is expected next
        last_capture: Cell where the capture happened, if any
    """

    def __init__(self, settings: GameSettings):
        """
        Initialize a fresh session state with a full board.

        Args:
            settings: Validated session configuration
        """
        self.settings = settings
        self.board = GraphBoard(settings.grid_size)
        last = settings.grid_size - 1
        self.positions: Dict[Role, Cell] = {Role.PURSUER: (0, 0), Role.EVADER: (last, last)}
        self.status = GameStatus.IN_PROGRESS
        self.cause: Optional[TerminalCause] = None
        self.winner: Optional[Role] = None
        self.turn = 0
        self.to_move = settings.human_roles[0]
        self.last_capture: Optional[Cell] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != GameStatus.IN_PROGRESS

    @property
    def perspective(self) -> Role:
        """Role that WON/LOST refer to: the human, or the first mover in two-player mode."""
        return self.settings.human_roles[0]

    def tokens_separated(self) -> bool:
        pursuer = self.positions[Role.PURSUER]
        evader = self.positions[Role.EVADER]
        return shortest_path(self.board, pursuer, evader) is None

    def check_game_end(self) -> bool:
        """
        Check terminal conditions and update the status accordingly.

        Capture is checked before separation. A terminal status is never undone.

        Returns:
            True if the game has ended, False otherwise
        """
        if self.is_terminal:
            return True

        pursuer = self.positions[Role.PURSUER]
        evader = self.positions[Role.EVADER]

        if pursuer == evader:
            self.last_capture = evader
            self._finish(Role.PURSUER, TerminalCause.CAPTURED)
        elif self.tokens_separated():
            if self.settings.separation_outcome == "escape":
                self._finish(Role.EVADER, TerminalCause.ESCAPED)
            else:
                self._finish(None, TerminalCause.SEPARATED)

        return self.is_terminal

    def _finish(self, winner: Optional[Role], cause: TerminalCause) -> None:
        self.winner = winner
        self.cause = cause
        if winner is None:
            self.status = GameStatus.STALEMATE
        elif winner == self.perspective:
            self.status = GameStatus.WON
        else:
            self.status = GameStatus.LOST

        logger.info(f"Game over after {self.turn} moves: {self.status.value} ({cause.value})")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the state to a snapshot for renderers.

        Returns:
            Dictionary representation of the state
        """
        return {
            "type": "game_state",
            "turn": self.turn,
            "mode": self.settings.mode,
            "difficulty": self.settings.difficulty,
            "to_move": self.to_move.value,
            "board": self.board.to_dict(),
            "positions": {role.value: list(cell) for role, cell in self.positions.items()},
            "status": self.status.value,
            "cause": self.cause.value if self.cause else None,
            "winner": self.winner.value if self.winner else None,
            "last_capture": list(self.last_capture) if self.last_capture else None,
        }


class GameEngine:
    """
    Handles turn sequencing: move validation, edge removal and computer replies.
    """

    def __init__(self, settings: Optional[GameSettings] = None, rng: Optional[random.Random] = None,
                 pursuer_start: Optional[Cell] = None, evader_start: Optional[Cell] = None):
        """
        Initialize the engine and start a fresh session.

        Args:
            settings: Session configuration, defaults to GameSettings()
            rng: Random source for placement, edge removal and random bots
            pursuer_start: Fixed pursuer start cell instead of a random top-row cell
            evader_start: Fixed evader start cell instead of a random bottom-row cell
        """
        from edgetag.botlib import create_bot

        self.settings = settings or GameSettings()
        self.rng = rng if rng is not None else random.Random()

        computer_role = self.settings.computer_role
        self.bot = None
        if computer_role is not None:
            self.bot = create_bot(self.settings.difficulty, computer_role, self.rng,
                                  self.settings.lookahead_depth)

        self.reset(pursuer_start, evader_start)

    def reset(self, pursuer_start: Optional[Cell] = None,
              evader_start: Optional[Cell] = None) -> Dict[str, Any]:
        """
        Discard the current session and build a new board and start positions.

        Edges removed before the first move never cut the tokens apart; on small
        boards fewer edges than requested may go.

        Returns:
            Snapshot of the new state
        """
        self.game_state = GameState(self.settings)
        self._place_tokens(pursuer_start, evader_start)

        removals = self.settings.initial_removals
        if removals is None:
            removals = 0
            if self.settings.mode == "offense":
                removals = self.rng.randint(*GameDefaults.OFFENSE_INITIAL_REMOVALS)

        removed = 0
        for _ in range(removals):
            if self.remove_random_edge(keep_connected=True) is None:
                break
            removed += 1

        self.game_state.check_game_end()

        logger.info(f"New {self.settings.mode} game on a {self.settings.grid_size}x{self.settings.grid_size} grid "
                    f"(pursuer {self.game_state.positions[Role.PURSUER]}, "
                    f"evader {self.game_state.positions[Role.EVADER]}, {removed} edges pre-removed)")
        return self.game_state.to_dict()

    def _place_tokens(self, pursuer_start: Optional[Cell], evader_start: Optional[Cell]) -> None:
        """
        Place the pursuer on the top row and the evader on the bottom row,
        at least `min_separation` columns apart.
        """
        state = self.game_state
        size = self.settings.grid_size
        separation = self.settings.min_separation
        columns = range(size)

        for start in (pursuer_start, evader_start):
            if start is not None and not state.board.in_bounds(tuple(start)):
                raise ConfigurationError(f"Start cell {start} is off the board")

        if pursuer_start is None:
            candidates = [x for x in columns if any(abs(x - other) >= separation for other in columns)]
            pursuer_start = (self.rng.choice(candidates), 0)
        pursuer_start = tuple(pursuer_start)

        if evader_start is None:
            px = pursuer_start[0]
            # The pursuer may have been given a bottom-row cell
            free_columns = [x for x in columns if (x, size - 1) != pursuer_start]
            candidates = [x for x in free_columns if abs(x - px) >= separation]
            if not candidates:
                candidates = [max(free_columns, key=lambda x: abs(x - px))]
            evader_start = (self.rng.choice(candidates), size - 1)
        evader_start = tuple(evader_start)

        if pursuer_start == evader_start:
            raise ConfigurationError("Tokens cannot start on the same cell")

        state.positions[Role.PURSUER] = pursuer_start
        state.positions[Role.EVADER] = evader_start

    def remove_random_edge(self, keep_connected: bool = False) -> Optional[Edge]:
        """
        Deactivate one active edge chosen by the configured policy.

        The edge joining the two tokens is never chosen while they are adjacent.

        Args:
            keep_connected: Also skip edges whose loss would cut the tokens apart

        Returns:
            The removed edge, or None if no edge was eligible
        """
        state = self.game_state
        board = state.board
        pursuer = state.positions[Role.PURSUER]
        evader = state.positions[Role.EVADER]
        protected = board.edge_between(pursuer, evader)

        candidates = [edge for edge in board.active_edges() if edge != protected]
        if keep_connected:
            candidates = [edge for edge in candidates if not separates(board, edge, pursuer, evader)]
        if not candidates:
            return None

        if self.settings.removal_policy == "center":
            weights = [removal_weight(edge, board.size) for edge in candidates]
            edge = self.rng.choices(candidates, weights=weights)[0]
        else:
            edge = self.rng.choice(candidates)

        board.deactivate(edge)
        logger.debug(f"Removed edge {edge.a}-{edge.b}")
        return edge

    def play_computer_move(self) -> Optional[Cell]:
        """
        Let the bot move the non-human token.

        Returns:
            The bot's new cell, or None if it abstained
        """
        if self.bot is None:
            return None

        state = self.game_state
        move = self.bot.play_turn(state)
        if move is None:
            logger.debug(f"{self.bot.player_id} has no legal move")
            return None

        state.positions[self.bot.role] = move
        logger.debug(f"{self.bot.player_id} moved to {move}")
        return move

    def process_move(self, direction: Union[Direction, str],
                     role: Union[Role, str, None] = None) -> Dict[str, Any]:
        """
        Process one directional command from a human player.

        Args:
            direction: Direction to move in
            role: Token to move; defaults to the role on turn

        Returns:
            Dictionary with the move result and the resulting state snapshot.
            A rejected move carries `accepted: False` and a `reason` and leaves
            the state untouched.
        """
        state = self.game_state

        if state.is_terminal:
            return self._reject("game_over")

        try:
            direction = Direction(direction)
        except (ValueError, TypeError):
            return self._reject("unknown_direction")

        if role is None:
            role = state.to_move
        try:
            role = Role(role)
        except (ValueError, TypeError):
            return self._reject("unknown_role")

        if role not in self.settings.human_roles:
            return self._reject("not_human")
        if role != state.to_move:
            return self._reject("not_your_turn")

        current = state.positions[role]
        target = direction.apply(current)
        if not state.board.is_connected(current, target):
            return self._reject("blocked")

        # Phase 1: Apply the human move
        state.positions[role] = target
        state.turn += 1
        result = {
            "type": "move_result",
            "accepted": True,
            "role": role.value,
            "direction": direction.value,
            "removed_edge": None,
            "computer_move": None,
        }

        # Phase 2: Stop right away on a finished game
        if not state.check_game_end():
            # Phase 3: Shrink the board
            removed = self.remove_random_edge()
            if removed is not None:
                result["removed_edge"] = removed.to_dict()

            # Phase 4: Computer reply or hand over the turn
            if self.bot is not None:
                computer_move = self.play_computer_move()
                if computer_move is not None:
                    result["computer_move"] = list(computer_move)
            else:
                state.to_move = role.opponent

            # Phase 5: Re-check
            state.check_game_end()

        result["game_over"] = state.is_terminal
        result["state"] = state.to_dict()
        return result

    def _reject(self, reason: str) -> Dict[str, Any]:
        return {
            "type": "move_result",
            "accepted": False,
            "reason": reason,
            "game_over": self.game_state.is_terminal,
            "state": self.game_state.to_dict(),
        }
