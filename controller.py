from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from q_agent import PersistenceError, QAgent
from ttt_trainer import MIN_EPSILON, SelfPlayTrainer, TrainStats
from ttt_env import Move

logger = logging.getLogger(__name__)


class AgentController:
    """Narrow entry point for front-ends: train once, then ask for moves.

    After `train` returns the agent is in inference mode, so `act` never
    explores, never takes the scripted block and never writes to the table.
    """

    def __init__(self, agent: Optional[QAgent] = None, min_epsilon: float = MIN_EPSILON):
        self.agent = agent if agent is not None else QAgent()
        self.min_epsilon = min_epsilon

    @classmethod
    def new(cls, alpha=0.08, gamma=0.7, epsilon=0.9, seed: Optional[int] = None,
            min_epsilon: float = MIN_EPSILON) -> "AgentController":
        agent = QAgent(alpha=alpha, gamma=gamma, epsilon=epsilon, train=True,
                       rng=np.random.default_rng(seed))
        return cls(agent, min_epsilon=min_epsilon)

    @classmethod
    def load(cls, path: str, seed: Optional[int] = None) -> "AgentController":
        agent = QAgent.load(path, rng=np.random.default_rng(seed))
        agent.train = False
        return cls(agent)

    def train(self, episodes: int, save_path: Optional[str] = None,
              callback: Optional[Callable[[int, TrainStats], None]] = None) -> TrainStats:
        self.agent.train = True
        stats = SelfPlayTrainer(self.agent, self.min_epsilon).train(episodes, callback)
        if save_path:
            try:
                self.save(save_path)
                logger.info("saved %d states to %s", len(self.agent.q), save_path)
            except PersistenceError as e:
                logger.warning("training finished but the table was not saved: %s", e)
                stats.save_error = e
        self.agent.train = False
        return stats

    def act(self, state: str, legal_moves: List[Move], blocking_move: Optional[Move] = None) -> Move:
        return self.agent.act(state, legal_moves, blocking_move)

    def serialize(self) -> Dict[str, Any]:
        return self.agent.to_dict()

    def save(self, path: str):
        self.agent.save(path)
