from __future__ import annotations
import argparse
import copy
import logging
import os

import numpy as np

from controller import AgentController
from q_agent import PersistenceError, QAgent
from ttt_trainer import MIN_EPSILON, TrainStats
from ttt_env import O, X
from ttt_gym_env import TicTacToeEnv

TRAIN_EPISODES = 300_000
FILENAME = "data.json"


def _legal_from_info(info) -> list[tuple[int, int]]:
    mask = info["legal_action_mask"]
    return [divmod(i, 3) for i, m in enumerate(mask) if int(m) == 1]


# ---------------------- evaluation ----------------------
def evaluate(agent: QAgent, episodes: int = 500, opponent: str = "random",
             seed: int | None = None) -> tuple[int, int, int]:
    """Play greedy games against an environment-controlled side and report W/D/L.
    The agent's mark and the first mover are drawn at random every game.

    Games are scored by the environment's terminal reward, so an illegal move
    counts as a loss. The agent's own generator is left untouched: evaluation
    plays through a shallow copy that draws from `seed` instead.
    """
    rng = np.random.default_rng(seed)
    player = copy.copy(agent)
    player.rng = rng
    win = draw = lose = 0
    for _ in range(episodes):
        agent_player = X if rng.random() < 0.5 else O
        env = TicTacToeEnv(agent_player=agent_player, opponent=opponent)
        obs, info = env.reset(seed=int(rng.integers(2**31)))
        reward, done = 0.0, False
        while not done:
            choice = player.select_action(info["state_key"], _legal_from_info(info),
                                          info["blocking_move"], greedy=True)
            r, c = choice.action
            obs, reward, terminated, truncated, info = env.step(3 * r + c)
            done = terminated or truncated
        if reward == env.win_reward:
            win += 1
        elif reward == env.draw_reward:
            draw += 1
        else:
            lose += 1
    return win, draw, lose


def _report(stats: TrainStats):
    print(f"Episodes {stats.episodes}: X won {stats.x_wins}, O won {stats.o_wins}, draws {stats.draws}")
    print(f"Exploration: {stats.exploration_rate:.2f}, Exploitation: {stats.exploitation_rate:.2f}"
          f" (forced blocks {stats.forced})")


# ---------------------- training ----------------------
def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Self-play tabular Q-learning for Tic-Tac-Toe")
    ap.add_argument("--episodes", type=int, default=TRAIN_EPISODES)
    ap.add_argument("--alpha", type=float, default=0.08)
    ap.add_argument("--gamma", type=float, default=0.7)
    ap.add_argument("--epsilon", type=float, default=0.9)
    ap.add_argument("--min-epsilon", type=float, default=MIN_EPSILON)
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--eval-every", type=int, default=50_000, help="0 disables periodic evaluation")
    ap.add_argument("--eval-games", type=int, default=1_000)
    ap.add_argument("--save", type=str, default=FILENAME)
    ap.add_argument("--load", type=str, default=None, help="warm-start from a saved table")
    ap.add_argument("--verbose", action="store_true")
    return ap.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    controller = AgentController.new(alpha=args.alpha, gamma=args.gamma, epsilon=args.epsilon,
                                     seed=args.seed, min_epsilon=args.min_epsilon)

    # Optional warm-start: keep the stored table, take hyper-parameters from the command line
    if args.load and os.path.exists(args.load):
        try:
            loaded = QAgent.load(args.load)
        except PersistenceError as e:
            print(f"Could not load {args.load}: {e}")
            return 1
        controller.agent.q.Q = loaded.q.Q
        print(f"Loaded Q table from {args.load} ({len(loaded.q)} states)")

    def progress(ep: int, stats: TrainStats):
        if args.eval_every > 0 and ep % args.eval_every == 0:
            w, d, l = evaluate(controller.agent, episodes=args.eval_games, opponent="random", seed=ep)
            denom = max(1, (w + l))
            print(f"[{ep}/{args.episodes}] eps={controller.agent.epsilon:.3f} "
                  f"vs Random -> Win {w}, Draw {d}, Lose {l}  (WinRate={w/denom:.2f})")

    stats = controller.train(args.episodes, save_path=args.save, callback=progress)
    _report(stats)

    for opponent in ("random", "perfect"):
        w, d, l = evaluate(controller.agent, episodes=args.eval_games, opponent=opponent, seed=args.seed)
        print(f"Final vs {opponent}: Win {w}, Draw {d}, Lose {l}")

    if args.save:
        if stats.save_error is not None:
            print(f"Training finished but saving failed: {stats.save_error}")
            return 1
        print(f"Saved game data to {args.save}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
