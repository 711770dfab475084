from __future__ import annotations
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

# Tic-Tac-Toe 3x3, X=+1, O=-1, empty=0
# board[9] row-major; current_player in {+1,-1}; the first mover is random

X, O, EMPTY = 1, -1, 0

SYMBOLS = {X: 'X', O: 'O', EMPTY: '-'}
FROM_SYMBOL = {v: k for k, v in SYMBOLS.items()}

WIN_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),  # rows
    (0, 3, 6), (1, 4, 7), (2, 5, 8),  # cols
    (0, 4, 8), (2, 4, 6),             # diagonals
)

Move = Tuple[int, int]


class MoveResult(NamedTuple):
    accepted: bool
    terminal: bool
    winner: Optional[int]


def winner_of(board: Sequence[int]) -> Optional[int]:
    for a, b, c in WIN_LINES:
        if board[a] != EMPTY and board[a] == board[b] == board[c]:
            return board[a]
    return None


def empty_cells(board: Sequence[int]) -> List[Move]:
    return [divmod(i, 3) for i, v in enumerate(board) if v == EMPTY]


def find_winning_move(board: Sequence[int], player: int) -> Optional[Move]:
    """First empty cell (row-major) that completes a line for `player`."""
    cells = list(board)
    for r, c in empty_cells(cells):
        cells[3 * r + c] = player
        won = winner_of(cells) == player
        cells[3 * r + c] = EMPTY
        if won:
            return (r, c)
    return None


def find_blocking_move(board: Sequence[int], player: int) -> Optional[Move]:
    """Cell `player` must take now so the opponent cannot win next turn.

    Every empty cell is tried with the opponent's mark; the first one that
    would hand the opponent a line is returned.
    """
    return find_winning_move(board, -player)


def state_key_of(board: Sequence[int]) -> str:
    return ''.join(SYMBOLS[int(v)] for v in board)


def action_key(move: Move) -> str:
    return f"{move[0]},{move[1]}"


def parse_action_key(key: str) -> Move:
    r, c = key.split(',')
    return (int(r), int(c))


class TicTacToe:
    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.board = [EMPTY] * 9
        self.current_player = self._coin_flip()
        self.last_move: Optional[Move] = None

    @classmethod
    def from_key(cls, key: str, current_player: int = X,
                 rng: Optional[np.random.Generator] = None) -> "TicTacToe":
        if len(key) != 9 or any(ch not in FROM_SYMBOL for ch in key):
            raise ValueError(f"bad state key: {key!r}")
        game = cls(rng)
        game.board = [FROM_SYMBOL[ch] for ch in key]
        game.current_player = current_player
        return game

    def _coin_flip(self) -> int:
        return X if self.rng.integers(2) == 0 else O

    def reset(self):
        self.board = [EMPTY] * 9
        self.current_player = self._coin_flip()
        self.last_move = None
        return self.board, self.current_player

    def copy(self) -> "TicTacToe":
        game = TicTacToe.__new__(TicTacToe)
        game.rng = self.rng
        game.board = self.board[:]
        game.current_player = self.current_player
        game.last_move = self.last_move
        return game

    def state_key(self) -> str:
        # no turn information on purpose: both sides share one table row per grid
        return state_key_of(self.board)

    def legal_moves(self) -> List[Move]:
        return empty_cells(self.board)

    def apply_move(self, row: int, col: int) -> MoveResult:
        if not (0 <= row < 3 and 0 <= col < 3) or self.board[3 * row + col] != EMPTY:
            return MoveResult(False, False, None)

        self.board[3 * row + col] = self.current_player
        self.last_move = (row, col)
        self.current_player = -self.current_player
        terminal, winner = self.is_game_over()
        return MoveResult(True, terminal, winner)

    def check_winner(self) -> Optional[int]:
        return winner_of(self.board)

    def is_draw(self) -> bool:
        return all(v != EMPTY for v in self.board)

    def is_game_over(self) -> Tuple[bool, Optional[int]]:
        winner = self.check_winner()
        return (winner is not None or self.is_draw()), winner

    def is_terminal(self) -> bool:
        return self.is_game_over()[0]

    def blocking_move(self) -> Optional[Move]:
        return find_blocking_move(self.board, self.current_player)

    def to_array(self) -> np.ndarray:
        return np.array(self.board, dtype=np.int8).reshape(3, 3)

    def render(self) -> str:
        rows = []
        for r in range(3):
            rows.append(' '.join(SYMBOLS[self.board[3*r + c]] for c in range(3)))
        turn = SYMBOLS[self.current_player]
        return "\n".join(rows) + f"\nTurn: {turn}"
