from typing import Optional

from edgetag.botlib import GameBot
from edgetag.core import Cell, GraphBoard, Role


class DistanceBot(GameBot):
    def choose_move(self, board: GraphBoard, position: Cell, opponent: Cell) -> Optional[Cell]:
        """
        - Evader: move as far from the opponent as the crow flies
        - Pursuer: move as close to the opponent as the crow flies
        """
        best_move = None
        best_score = float('-inf')

        for move in self.get_moves(board, position):
            distance = self.euclidean(move, opponent)
            score = distance if self.role is Role.EVADER else -distance

            if score > best_score:
                best_score = score
                best_move = move

        return best_move
