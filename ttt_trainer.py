from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from q_agent import PersistenceError, QAgent
from ttt_env import EMPTY, O, SYMBOLS, X, TicTacToe, action_key

logger = logging.getLogger(__name__)

MIN_EPSILON = 0.1

WIN_REWARD = 1.0
EARLY_BLOCK_REWARD = 0.9   # block made while more than 5 cells were empty
LATE_BLOCK_REWARD = 0.4
DRAW_REWARD = 0.3

PROPAGATION_REWARD = 0.7
PROPAGATION_DECAY = 0.7
PROPAGATION_CAP = 0.1


class TrainingInvariantError(RuntimeError):
    """An episode ended in a way legal play cannot produce."""


@dataclass
class TrainStats:
    episodes: int = 0
    moves: int = 0
    explored: int = 0
    forced: int = 0
    x_wins: int = 0
    o_wins: int = 0
    draws: int = 0
    save_error: Optional[PersistenceError] = None

    @property
    def exploited(self) -> int:
        return self.moves - self.explored

    @property
    def exploration_rate(self) -> float:
        return self.explored / self.moves if self.moves else 0.0

    @property
    def exploitation_rate(self) -> float:
        return self.exploited / self.moves if self.moves else 0.0


def decayed_epsilon(start: float, floor: float, episode: int, episodes: int) -> float:
    # linear from `start` at episode 0 down to `floor`, then held there
    if episodes <= 0:
        return max(start, floor)
    return max(start - episode * (start - floor) / episodes, floor)


def immediate_reward(game: TicTacToe, mover: int, pre_state: str, forced: bool) -> float:
    """Reward for the side that just moved, given the post-move game."""
    if game.check_winner() == mover:
        return WIN_REWARD
    if forced:
        empties = pre_state.count(SYMBOLS[EMPTY])
        return EARLY_BLOCK_REWARD if empties > 5 else LATE_BLOCK_REWARD
    if game.is_draw():
        return DRAW_REWARD
    return 0.0


class SelfPlayTrainer:
    def __init__(self, agent: QAgent, min_epsilon: float = MIN_EPSILON):
        if not 0.0 <= min_epsilon <= 1.0:
            raise ValueError(f"min_epsilon must be in [0, 1], got {min_epsilon}")
        self.agent = agent
        self.min_epsilon = min_epsilon
        self.stats = TrainStats()

    def propagate_win(self, states: List[str], action: str):
        # one action key is reused for every historical step
        reward = PROPAGATION_REWARD
        for s, s_next in zip(states, states[1:]):
            self.agent.q.update(s, action, reward, s_next)
            reward = min(self.agent.alpha * PROPAGATION_DECAY, PROPAGATION_CAP)

    def run_episode(self) -> Optional[int]:
        """Play one self-play game, updating the table; returns the winner."""
        agent = self.agent
        game = TicTacToe(agent.rng)
        states: List[str] = []
        actions: List[str] = []

        while True:
            mover = game.current_player
            prev_player = -mover
            game_over, winner = game.is_game_over()
            if game_over:
                if len(states) < 3:
                    raise TrainingInvariantError(
                        f"episode ended after {len(states)} moves: {game.state_key()}")
                actions.pop()
                if winner == prev_player:
                    self.propagate_win(states, actions.pop())
                self._record_result(winner)
                return winner

            state = game.state_key()
            states.append(state)
            choice = agent.select_action(state, game.legal_moves(), game.blocking_move())
            game.apply_move(*choice.action)
            a_key = action_key(choice.action)
            actions.append(a_key)

            self.stats.moves += 1
            self.stats.explored += choice.explored
            self.stats.forced += choice.forced

            reward = immediate_reward(game, mover, state, choice.forced)
            agent.q.update(state, a_key, reward, game.state_key())

    def _record_result(self, winner: Optional[int]):
        self.stats.episodes += 1
        if winner == X:
            self.stats.x_wins += 1
        elif winner == O:
            self.stats.o_wins += 1
        else:
            self.stats.draws += 1

    def train(self, episodes: int,
              callback: Optional[Callable[[int, TrainStats], None]] = None) -> TrainStats:
        agent = self.agent
        if not agent.train:
            raise ValueError("agent must be in training mode to train")
        epsilon_start = agent.epsilon
        logger.info("training %d episodes (alpha=%s gamma=%s epsilon=%s)",
                    episodes, agent.alpha, agent.gamma, epsilon_start)

        for episode in range(episodes):
            self.run_episode()
            agent.epsilon = decayed_epsilon(epsilon_start, self.min_epsilon, episode, episodes)
            if callback is not None:
                callback(episode + 1, self.stats)

        logger.info("done: %d states, exploration %.2f, exploitation %.2f",
                    len(agent.q), self.stats.exploration_rate, self.stats.exploitation_rate)
        return self.stats
