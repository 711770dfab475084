from __future__ import annotations
import argparse
import os

import numpy as np

from controller import AgentController
from q_agent import PersistenceError
from ttt_train import FILENAME
from ttt_env import O, SYMBOLS, X, TicTacToe, find_winning_move


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Play Tic-Tac-Toe against the Q-learning agent")
    ap.add_argument("--load", type=str, default=FILENAME, help="path to a saved table")
    ap.add_argument("--train-episodes", type=int, default=50_000,
                    help="episodes to train when no saved table is found")
    ap.add_argument("--mode", type=str, default="pva", choices=["pva", "pvp"],
                    help="player vs agent, or player vs player")
    ap.add_argument("--ai", type=str, default="O", choices=["X", "O"], help="mark played by the agent")
    ap.add_argument("--seed", type=int, default=None)
    return ap.parse_args(argv)


def parse_move(s: str):
    # "4" (cell index) or "1 1" / "1,1" (row col)
    parts = s.replace(',', ' ').split()
    if len(parts) == 1:
        idx = int(parts[0])
        if not 0 <= idx < 9:
            raise ValueError(idx)
        return divmod(idx, 3)
    if len(parts) == 2:
        return int(parts[0]), int(parts[1])
    raise ValueError(s)


def human_move(game: TicTacToe):
    legal = game.legal_moves()
    while True:
        s = input(f"{SYMBOLS[game.current_player]} to move (0-8 or 'row col', 'h' hint, 'q' quit): ").strip()
        if s.lower() in ("q", "quit", "exit"):
            return None
        if s.lower() in ("h", "hint"):
            win = find_winning_move(game.board, game.current_player)
            block = game.blocking_move()
            print(f"winning move: {win}, must block: {block}")
            continue
        try:
            move = parse_move(s)
        except ValueError:
            print("Enter a cell number 0..8 or a row and column.")
            continue
        if move in legal:
            return move
        print(f"Illegal move. Free cells: {legal}")


def load_or_train(args) -> AgentController:
    if args.load and os.path.exists(args.load):
        try:
            controller = AgentController.load(args.load, seed=args.seed)
            print(f"Loaded Q table from {args.load} ({len(controller.agent.q)} states)")
            return controller
        except PersistenceError as e:
            print(f"Could not load {args.load}: {e}")
    print(f"Training a fresh agent for {args.train_episodes} episodes...")
    controller = AgentController.new(seed=args.seed)
    controller.train(args.train_episodes)
    return controller


def main(argv=None):
    args = parse_args(argv)
    controller = load_or_train(args) if args.mode == "pva" else None
    ai_mark = X if args.ai == "X" else O

    game = TicTacToe(np.random.default_rng(args.seed))
    while True:
        game.reset()
        print("New game!", f"{SYMBOLS[game.current_player]} moves first.")
        print(game.render())

        done, winner = False, None
        while not done:
            if controller is not None and game.current_player == ai_mark:
                move = controller.act(game.state_key(), game.legal_moves(), game.blocking_move())
                print(f"Agent plays {move}")
            else:
                move = human_move(game)
                if move is None:
                    print("Bye.")
                    return 0
            _, done, winner = game.apply_move(*move)
            print(game.render())

        if winner is None:
            print("It's a draw!")
        elif controller is not None and winner == ai_mark:
            print("Agent wins!")
        else:
            print(f"Player {SYMBOLS[winner]} wins!")

        again = input("Play again? (y/n) ").strip().lower()
        if again != 'y':
            return 0


if __name__ == "__main__":
    raise SystemExit(main())
