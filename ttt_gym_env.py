"""
Tic-Tac-Toe (3x3) — Gymnasium environment around `ttt_env.TicTacToe`

Used to evaluate a trained Q-table against scripted opponents; training itself
drives `TicTacToe` directly (see `ttt_trainer.py`).

- Agent can play **X (+1)** or **O (-1)**; set via `agent_player`.
- The first mover is drawn at random on every reset (pass
  `options={"first_player": 1}` to fix it).
- Observation: Dict with
    - "board": (3, 3) int8 array in {-1, 0, +1}
    - "to_play": (1,) int8 array in {-1, +1}
- Action space: Discrete(9), indexing cells row-major [0..8].
- Rewards are **from the agent's perspective**: `win_reward`, `loss_reward`,
  `draw_reward` (also returned for non-terminal steps as 0.0).
- `info` always contains `legal_action_mask`, `state_key`, `blocking_move`,
  `last_move` and `agent_player`; terminal steps add `winner` (+1/-1/0) and
  `terminal_reason`.

Example (agent plays O against the minimax opponent):

```python
env = TicTacToeEnv(agent_player=-1, opponent="perfect", render_mode="ansi")
obs, info = env.reset(seed=0)
terminated = truncated = False
while not (terminated or truncated):
    action = int(np.random.choice(np.flatnonzero(info["legal_action_mask"])))
    obs, reward, terminated, truncated, info = env.step(action)
print(env.render())
```
"""
from __future__ import annotations
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import gymnasium as gym
from gymnasium import spaces

from ttt_env import EMPTY, O, SYMBOLS, X, TicTacToe, winner_of


# ---------------- Minimax (perfect) policy ----------------
@lru_cache(maxsize=None)
def minimax_value(board: Tuple[int, ...], current: int, root: int) -> int:
    w = winner_of(board)
    if w is not None:
        return 1 if w == root else -1
    if all(v != EMPTY for v in board):
        return 0
    values = []
    for i, v in enumerate(board):
        if v == EMPTY:
            b2 = list(board)
            b2[i] = current
            values.append(minimax_value(tuple(b2), -current, root))
    return max(values) if current == root else min(values)


def minimax_actions(board: Tuple[int, ...], player: int) -> List[int]:
    """All cell indices that are optimal for `player` to take."""
    best_val, best_actions = -2, []
    for i, v in enumerate(board):
        if v != EMPTY:
            continue
        b2 = list(board)
        b2[i] = player
        val = minimax_value(tuple(b2), -player, player)
        if val > best_val:
            best_val, best_actions = val, [i]
        elif val == best_val:
            best_actions.append(i)
    return best_actions


class TicTacToeEnv(gym.Env):
    """Tic-Tac-Toe for Gymnasium with agent role selection.

    Parameters
    ----------
    agent_player : {+1, -1}, default +1
        Which side the agent plays.
    opponent : {None, "random", "perfect"}, default "random"
        - None: no auto-opponent; the caller acts for both sides.
        - "random": the environment plays the other side uniformly at random.
        - "perfect": the environment plays the other side with minimax.
    illegal_move_ends : bool, default True
        If True an illegal action ends the episode with `loss_reward`;
        otherwise it is ignored and `info["illegal"] = True`.
    render_mode : {None, "ansi"}
    """

    metadata = {"render_modes": ["ansi"], "name": "TicTacToe-v3"}

    def __init__(
        self,
        *,
        agent_player: int = X,
        opponent: Optional[str] = "random",
        illegal_move_ends: bool = True,
        win_reward: float = 1.0,
        draw_reward: float = 0.0,
        loss_reward: float = -1.0,
        render_mode: Optional[str] = None,
    ) -> None:
        assert agent_player in (X, O), "agent_player must be +1 (X) or -1 (O)"
        assert opponent in (None, "random", "perfect"), "opponent must be None, 'random', or 'perfect'"
        assert render_mode in (None, "ansi")
        self.render_mode = render_mode

        self.agent_player = int(agent_player)
        self.opponent_mode = opponent
        self.illegal_move_ends = illegal_move_ends
        self.win_reward = float(win_reward)
        self.draw_reward = float(draw_reward)
        self.loss_reward = float(loss_reward)

        self.action_space = spaces.Discrete(9)
        self.observation_space = spaces.Dict(
            {
                "board": spaces.Box(low=-1, high=1, shape=(3, 3), dtype=np.int8),
                "to_play": spaces.Box(low=-1, high=1, shape=(1,), dtype=np.int8),
            }
        )

        self.game: Optional[TicTacToe] = None
        self._terminated: bool = False

    # --------------- Gymnasium core API ---------------
    def reset(self, *, seed: Optional[int] = None, options: Optional[Dict[str, Any]] = None):
        super().reset(seed=seed)
        self.game = TicTacToe(self.np_random)
        first = (options or {}).get("first_player")
        if first is not None:
            assert first in (X, O), "first_player must be +1 (X) or -1 (O)"
            self.game.current_player = int(first)
        self._terminated = False

        # auto-opponent opens when it won the coin flip
        if self.opponent_mode is not None and self.game.current_player != self.agent_player:
            self._env_opponent_move_once()

        return self._obs(), self._info()

    def step(self, action: int):
        if self.game is None or self._terminated:
            raise RuntimeError("Cannot call step() on a terminated episode. Call reset().")

        action = int(action)
        accepted = 0 <= action < 9 and self.game.apply_move(*divmod(action, 3)).accepted
        if not accepted:
            if self.illegal_move_ends:
                self._terminated = True
                return self._obs(), float(self.loss_reward), True, False, self._info(illegal=True)
            return self._obs(), 0.0, False, False, self._info(illegal=True)

        outcome = self._terminal_outcome()
        if outcome is not None:
            return outcome

        if self.opponent_mode is not None and self.game.current_player != self.agent_player:
            self._env_opponent_move_once()
            outcome = self._terminal_outcome()
            if outcome is not None:
                return outcome

        return self._obs(), 0.0, False, False, self._info()

    def render(self) -> Optional[str]:
        if self.render_mode != "ansi" or self.game is None:
            return None
        rows = self.game.render().splitlines()[:3]
        if self._terminated:
            w = self.game.check_winner()
            tail = f"Game over. Winner: {SYMBOLS[w]}" if w is not None else "Game over. Draw."
        else:
            tail = f"Turn: {SYMBOLS[self.game.current_player]}"
        return "\n".join(rows) + "\n" + tail

    # --------------- Helpers ---------------
    def _obs(self) -> Dict[str, np.ndarray]:
        return {
            "board": self.game.to_array(),
            "to_play": np.array([self.game.current_player], dtype=np.int8),
        }

    def _info(self, **extra) -> Dict[str, Any]:
        info = {
            "legal_action_mask": np.array([v == EMPTY for v in self.game.board], dtype=np.int8),
            "state_key": self.game.state_key(),
            "blocking_move": self.game.blocking_move(),
            "last_move": self.game.last_move,
            "agent_player": self.agent_player,
        }
        info.update(extra)
        return info

    def _terminal_outcome(self):
        game_over, winner = self.game.is_game_over()
        if not game_over:
            return None
        self._terminated = True
        if winner is None:
            info = self._info(winner=0, terminal_reason="draw")
            return self._obs(), float(self.draw_reward), True, False, info
        agent_won = winner == self.agent_player
        reward = self.win_reward if agent_won else self.loss_reward
        info = self._info(winner=int(winner), terminal_reason="win" if agent_won else "loss")
        return self._obs(), float(reward), True, False, info

    def _env_opponent_move_once(self) -> None:
        assert self.opponent_mode is not None
        assert self.game.current_player != self.agent_player
        idx = self._opponent_action(player=self.game.current_player)
        self.game.apply_move(*divmod(idx, 3))

    def _opponent_action(self, *, player: int) -> int:
        if self.opponent_mode == "random":
            legal = [i for i, v in enumerate(self.game.board) if v == EMPTY]
        elif self.opponent_mode == "perfect":
            legal = minimax_actions(tuple(self.game.board), player)
        else:
            raise RuntimeError("Opponent mode is not set but _opponent_action was called.")
        # tie-break randomly for variety
        return int(self.np_random.choice(legal))
