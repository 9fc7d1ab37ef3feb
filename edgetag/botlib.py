"""
Bot Library for Vanishing-Edges Tag

This library provides the base class for computer opponents. A bot only
decides where its token goes next; the engine applies the move, removes edges
and checks for the end of the game.

Usage:
1. Inherit from GameBot
2. Implement the choose_move() method
3. Let the engine call play_turn() with the current state

Example:
    class LazyBot(GameBot):
        def choose_move(self, board, position, opponent):
            moves = self.get_moves(board, position)
            return moves[0] if moves else None
"""

import logging
import math
import random
import string
from abc import ABC, abstractmethod
from typing import List, Optional

from edgetag.config import BotConfig, GameDefaults
from edgetag.core import Cell, ConfigurationError, GameState, GraphBoard, Role, legal_moves, path_distance

logger = logging.getLogger(__name__)


class GameBot(ABC):
    """
    Abstract base class for computer opponents playing one role.
    """

    def __init__(self, role: Role, rng: Optional[random.Random] = None, player_id: Optional[str] = None):
        """
        Initialize the bot.

        Args:
            role: Token this bot controls
            rng: Random source; bots that never roll dice ignore it
            player_id: Display name (if None, a random one is generated)
        """
        self.role = role
        self.rng = rng if rng is not None else random.Random()

        if not player_id:
            random_string = ''.join(self.rng.choices(string.ascii_lowercase + string.digits, k=4))
            player_id = str(self.__class__.__name__) + " " + random_string
        self.player_id = player_id

        logger.debug(f"Bot {self.player_id} initialized as {self.role.value}")

    @abstractmethod
    def choose_move(self, board: GraphBoard, position: Cell, opponent: Cell) -> Optional[Cell]:
        """
        Main bot logic - implement this method.

        Args:
            board: Current board
            position: Cell of this bot's token
            opponent: Cell of the other token

        Returns:
            Cell to move to (one of the legal moves), or None to abstain
        """
        pass

    def play_turn(self, game_state: GameState) -> Optional[Cell]:
        """Pick a move for this bot's token in the given session state."""
        position = game_state.positions[self.role]
        opponent = game_state.positions[self.role.opponent]
        return self.choose_move(game_state.board, position, opponent)

    # High-level convenience methods

    def get_moves(self, board: GraphBoard, cell: Cell) -> List[Cell]:
        """Legal moves from a cell."""
        return legal_moves(board, cell)

    def path_steps(self, board: GraphBoard, start: Cell, goal: Cell) -> int:
        """
        Steps along a shortest path, with an unreachable goal counted as
        further away than any reachable one.
        """
        steps = path_distance(board, start, goal)
        if steps is None:
            return board.size * board.size
        return steps

    @staticmethod
    def euclidean(a: Cell, b: Cell) -> float:
        return math.hypot(a[0] - b[0], a[1] - b[1])

    @staticmethod
    def is_corner(board: GraphBoard, cell: Cell) -> bool:
        last = board.size - 1
        return cell[0] in (0, last) and cell[1] in (0, last)


def create_bot(difficulty: str, role: Role, rng: Optional[random.Random] = None,
               lookahead_depth: int = GameDefaults.LOOKAHEAD_DEPTH) -> GameBot:
    """
    Build the computer opponent for a difficulty level.

    Args:
        difficulty: One of BotConfig.DIFFICULTIES
        role: Token the bot controls
        rng: Random source shared with the engine
        lookahead_depth: Mobility lookahead used by the hard bot

    Raises:
        ConfigurationError: If the difficulty is unknown
    """
    if difficulty not in BotConfig.DIFFICULTIES:
        raise ConfigurationError(f"Invalid difficulty: {difficulty}")

    player_id = f"{BotConfig.BOT_NAME[difficulty]} ({role.value})"

    if difficulty == "easy":
        from edgetag.bot.easy import RandomBot
        return RandomBot(role, rng, player_id)
    elif difficulty == "medium":
        from edgetag.bot.medium import DistanceBot
        return DistanceBot(role, rng, player_id)
    else:
        from edgetag.bot.hard import HeuristicBot
        return HeuristicBot(role, rng, player_id, lookahead_depth=lookahead_depth)
