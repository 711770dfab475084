from __future__ import annotations
import json
from typing import Any, Dict, List, NamedTuple, Optional

import numpy as np

from ttt_env import Move, action_key

# Tabular Q-learning agent (one table shared by both marks)
# state key = 9-char grid fingerprint, action key = "row,col"


class PersistenceError(Exception):
    """Snapshot could not be written or read back."""


class QTable:
    def __init__(self, alpha: float, gamma: float):
        self.alpha = alpha
        self.gamma = gamma
        self.Q: Dict[str, Dict[str, float]] = {}

    def __len__(self) -> int:
        return len(self.Q)

    def num_entries(self) -> int:
        return sum(len(actions) for actions in self.Q.values())

    def has_state(self, state: str) -> bool:
        return state in self.Q

    def get(self, state: str, action: str) -> float:
        # reading materializes the default entry
        return self.Q.setdefault(state, {}).setdefault(action, 0.0)

    def peek(self, state: str, action: str) -> float:
        return self.Q.get(state, {}).get(action, 0.0)

    def max_value(self, state: str) -> float:
        actions = self.Q.get(state)
        return max(actions.values()) if actions else 0.0

    def update(self, state: str, action: str, reward: float, next_state: str):
        max_next = self.max_value(next_state)
        old = self.get(state, action)
        self.Q[state][action] = old + self.alpha * (reward + self.gamma * max_next - old)

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {s: dict(actions) for s, actions in self.Q.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, float]], alpha: float, gamma: float) -> "QTable":
        table = cls(alpha, gamma)
        table.Q = {s: {a: float(v) for a, v in actions.items()} for s, actions in data.items()}
        return table


class Choice(NamedTuple):
    action: Move
    forced: bool     # heuristic block taken during training
    explored: bool   # epsilon-random pick


def _check_config(alpha: float, gamma: float, epsilon: float):
    if not 0.0 < alpha <= 1.0:
        raise ValueError(f"alpha must be in (0, 1], got {alpha}")
    if not 0.0 <= gamma <= 1.0:
        raise ValueError(f"gamma must be in [0, 1], got {gamma}")
    if not 0.0 <= epsilon <= 1.0:
        raise ValueError(f"epsilon must be in [0, 1], got {epsilon}")


class QAgent:
    def __init__(self, alpha=0.08, gamma=0.7, epsilon=0.9, train=True,
                 rng: Optional[np.random.Generator] = None):
        _check_config(alpha, gamma, epsilon)
        self.epsilon = epsilon
        self.train = train
        self.rng = rng if rng is not None else np.random.default_rng()
        self.q = QTable(alpha, gamma)

    @property
    def alpha(self) -> float:
        return self.q.alpha

    @property
    def gamma(self) -> float:
        return self.q.gamma

    def _random_move(self, legal_moves: List[Move]) -> Move:
        return legal_moves[int(self.rng.integers(len(legal_moves)))]

    def select_action(self, state: str, legal_moves: List[Move],
                      blocking_move: Optional[Move] = None, greedy: bool = False) -> Choice:
        if not legal_moves:
            raise ValueError(f"no legal moves in state {state!r}")
        training = self.train and not greedy

        # forced block only while training; inference relies on the table alone
        if blocking_move is not None and training:
            return Choice(tuple(blocking_move), True, False)

        # the draw is made even when not training so seeded runs replay identically
        if self.rng.random() < self.epsilon and training:
            return Choice(self._random_move(legal_moves), False, True)

        if not self.q.has_state(state):
            return Choice(self._random_move(legal_moves), False, False)

        # argmax over legal moves; on ties the last one scanned wins
        best_a, best_q = legal_moves[0], self.q.peek(state, action_key(legal_moves[0]))
        for a in legal_moves[1:]:
            v = self.q.peek(state, action_key(a))
            if v >= best_q:
                best_a, best_q = a, v
        return Choice(best_a, False, False)

    def act(self, state: str, legal_moves: List[Move], blocking_move: Optional[Move] = None) -> Move:
        return self.select_action(state, legal_moves, blocking_move).action

    # ---------------------- persistence ----------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "q_table": self.q.to_dict(),
            "alpha": self.alpha,
            "gamma": self.gamma,
            "epsilon": self.epsilon,
            "train": self.train,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], rng: Optional[np.random.Generator] = None) -> "QAgent":
        try:
            agent = cls(alpha=float(data["alpha"]), gamma=float(data["gamma"]),
                        epsilon=float(data["epsilon"]), train=bool(data["train"]), rng=rng)
            agent.q = QTable.from_dict(data["q_table"], agent.alpha, agent.gamma)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise PersistenceError(f"malformed snapshot: {e!r}") from e
        return agent

    def save(self, path: str):
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(self.to_dict(), f)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"could not write snapshot to {path}: {e}") from e

    @classmethod
    def load(cls, path: str, rng: Optional[np.random.Generator] = None) -> "QAgent":
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"could not read snapshot from {path}: {e}") from e
        return cls.from_dict(data, rng=rng)
