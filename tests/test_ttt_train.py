import json

import numpy as np

import ttt_train
from controller import AgentController
from q_agent import Choice, QAgent


def test_evaluate_counts_every_game():
    agent = QAgent(rng=np.random.default_rng(0))
    w, d, l = ttt_train.evaluate(agent, episodes=40, opponent="random", seed=0)
    assert w + d + l == 40
    # greedy evaluation leaves the table untouched
    assert agent.q.Q == {}


def test_evaluate_against_perfect_never_wins():
    controller = AgentController.new(seed=0)
    controller.train(100)
    w, d, l = ttt_train.evaluate(controller.agent, episodes=20, opponent="perfect", seed=1)
    assert w == 0
    assert d + l == 20


def test_evaluate_is_reproducible():
    controller = AgentController.new(seed=0)
    controller.train(100)
    b = ttt_train.evaluate(controller.agent, episodes=30, seed=7)
    c = ttt_train.evaluate(controller.agent, episodes=30, seed=7)
    assert b == c
    assert sum(b) == 30


def test_evaluate_leaves_agent_generator_alone():
    agent = QAgent(epsilon=0.0, train=False, rng=np.random.default_rng(3))
    before = agent.rng.bit_generator.state
    ttt_train.evaluate(agent, episodes=10, seed=0)
    assert agent.rng.bit_generator.state == before


def test_periodic_evaluation_does_not_change_training():
    plain = AgentController.new(seed=1)
    plain.train(200)

    checked = AgentController.new(seed=1)

    def progress(ep, stats):
        if ep % 50 == 0:
            ttt_train.evaluate(checked.agent, episodes=3, seed=ep)

    checked.train(200, callback=progress)
    assert checked.agent.q.Q == plain.agent.q.Q
    assert checked.agent.epsilon == plain.agent.epsilon


class CornerOnly(QAgent):
    """Always plays the top-left cell, legal or not."""

    def select_action(self, state, legal_moves, blocking_move=None, greedy=False):
        return Choice((0, 0), False, False)


def test_evaluate_scores_illegal_move_as_loss():
    # the second visit to (0, 0) is illegal and ends the game with no winner
    w, d, l = ttt_train.evaluate(CornerOnly(rng=np.random.default_rng(0)), episodes=12, seed=4)
    assert (w, d, l) == (0, 0, 12)


def test_main_trains_and_saves(tmp_path, capsys):
    path = tmp_path / "data.json"
    code = ttt_train.main(["--episodes", "40", "--eval-every", "20", "--eval-games", "5",
                           "--save", str(path), "--seed", "1"])
    assert code == 0
    out = capsys.readouterr().out
    assert "[20/40]" in out and "[40/40]" in out
    assert "Exploration:" in out
    assert f"Saved game data to {path}" in out
    assert set(json.loads(path.read_text(encoding="utf-8"))) == {"q_table", "alpha", "gamma", "epsilon", "train"}


def test_main_warm_start(tmp_path, capsys):
    path = tmp_path / "data.json"
    ttt_train.main(["--episodes", "20", "--eval-every", "0", "--eval-games", "2", "--save", str(path), "--seed", "1"])
    states = len(QAgent.load(str(path)).q)
    code = ttt_train.main(["--episodes", "20", "--eval-every", "0", "--eval-games", "2",
                           "--load", str(path), "--save", str(path), "--seed", "2"])
    assert code == 0
    assert f"Loaded Q table from {path}" in capsys.readouterr().out
    assert len(QAgent.load(str(path)).q) >= states


def test_main_reports_save_failure(tmp_path, capsys):
    code = ttt_train.main(["--episodes", "10", "--eval-every", "0", "--eval-games", "2",
                           "--save", str(tmp_path / "missing" / "data.json")])
    assert code == 1
    assert "saving failed" in capsys.readouterr().out
