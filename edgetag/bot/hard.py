import random
from typing import Optional

from edgetag.botlib import GameBot
from edgetag.config import BoardConfig, BotConfig, GameDefaults
from edgetag.core import Cell, ConfigurationError, GraphBoard, Role


class HeuristicBot(GameBot):
    def __init__(self, role: Role, rng: Optional[random.Random] = None, player_id: Optional[str] = None,
                 lookahead_depth: int = GameDefaults.LOOKAHEAD_DEPTH):
        super().__init__(role, rng, player_id)

        if not (0 <= lookahead_depth <= BoardConfig.MAX_LOOKAHEAD_DEPTH):
            raise ConfigurationError(
                f"Lookahead depth must be between 0 and {BoardConfig.MAX_LOOKAHEAD_DEPTH}")
        self.lookahead_depth = lookahead_depth

    def choose_move(self, board: GraphBoard, position: Cell, opponent: Cell) -> Optional[Cell]:
        """
        Enhanced strategy that scores every legal move by:
        - Shortest-path distance to the opponent over the remaining edges
        - Mobility, looking a few moves ahead
        - Small positional preferences

        Ties go to the move found first (left, right, up, down).
        """
        best_move = None
        best_score = float('-inf')

        for move in self.get_moves(board, position):
            score = self.score_move(board, move, opponent)

            if score > best_score:
                best_score = score
                best_move = move

        return best_move

    def score_move(self, board: GraphBoard, move: Cell, opponent: Cell) -> float:
        """Weighted score of stepping onto `move`; higher is better for this bot."""
        return (self._distance_score(board, move, opponent) +
                BotConfig.MOBILITY_WEIGHT * self.mobility(board, move, self.lookahead_depth) +
                self._positional_bias(board, move, opponent))

    def _distance_score(self, board: GraphBoard, move: Cell, opponent: Cell) -> float:
        """Evaders want the opponent's path to them long, pursuers want their own path short."""
        if self.role is Role.EVADER:
            return BotConfig.DISTANCE_WEIGHT * self.path_steps(board, opponent, move)
        return -BotConfig.DISTANCE_WEIGHT * self.path_steps(board, move, opponent)

    def mobility(self, board: GraphBoard, cell: Cell, depth: int) -> int:
        """
        Open moves from `cell`, plus the best mobility reachable in `depth` more steps.

        Branches at most four ways per level, so a call costs O(4^depth) neighbour
        lookups; depth is capped by BoardConfig.MAX_LOOKAHEAD_DEPTH.
        """
        moves = self.get_moves(board, cell)
        if depth <= 0:
            return len(moves)

        return max((self.mobility(board, move, depth - 1) for move in moves), default=0) + len(moves)

    def _positional_bias(self, board: GraphBoard, move: Cell, opponent: Cell) -> float:
        if self.role is Role.EVADER:
            return self._evader_bias(board, move, opponent)
        return self._pursuer_bias(board, move)

    def _evader_bias(self, board: GraphBoard, move: Cell, opponent: Cell) -> float:
        """Hide in corners when boxed in; stay out of the opponent's immediate reach."""
        bias = 0.0

        if len(self.get_moves(board, move)) <= 2 and self.is_corner(board, move):
            bias += BotConfig.CORNER_WEIGHT

        for opponent_move in self.get_moves(board, opponent):
            if self.path_steps(board, opponent_move, move) <= 1:
                bias -= BotConfig.ADJACENCY_WEIGHT

        return bias

    def _pursuer_bias(self, board: GraphBoard, move: Cell) -> float:
        """Prefer the centre and well-connected neighbourhoods."""
        center = (board.size - 1) / 2
        center_distance = abs(move[0] - center) + abs(move[1] - center)

        return (-BotConfig.CENTER_WEIGHT * center_distance +
                BotConfig.EDGE_DENSITY_WEIGHT * self.local_edge_count(board, move))

    @staticmethod
    def local_edge_count(board: GraphBoard, cell: Cell) -> int:
        """Active right/bottom edges anchored in the 3x3 block around `cell`."""
        count = 0
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                anchor = (cell[0] + dx, cell[1] + dy)
                if board.is_connected(anchor, (anchor[0] + 1, anchor[1])):
                    count += 1
                if board.is_connected(anchor, (anchor[0], anchor[1] + 1)):
                    count += 1
        return count
