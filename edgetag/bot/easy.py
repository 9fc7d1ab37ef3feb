from typing import Optional

from edgetag.botlib import GameBot
from edgetag.core import Cell, GraphBoard


class RandomBot(GameBot):
    def choose_move(self, board: GraphBoard, position: Cell, opponent: Cell) -> Optional[Cell]:
        """
        - Pick any legal move at random
        """
        moves = self.get_moves(board, position)
        if not moves:
            return None
        return self.rng.choice(moves)
