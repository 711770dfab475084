import numpy as np
import pytest

from ttt_env import O, X
from ttt_gym_env import TicTacToeEnv, minimax_actions, minimax_value


def test_reset_agent_first():
    env = TicTacToeEnv(agent_player=X, opponent="random")
    obs, info = env.reset(seed=0, options={"first_player": X})
    assert obs["board"].shape == (3, 3)
    assert not obs["board"].any()
    assert obs["to_play"][0] == X
    assert info["legal_action_mask"].tolist() == [1] * 9
    assert info["state_key"] == "---------"
    assert info["blocking_move"] is None


def test_reset_opponent_opens():
    env = TicTacToeEnv(agent_player=O, opponent="random")
    obs, info = env.reset(seed=0, options={"first_player": X})
    assert int(np.count_nonzero(obs["board"])) == 1
    assert obs["to_play"][0] == O
    assert int(info["legal_action_mask"].sum()) == 8


def test_reset_draws_first_mover():
    env = TicTacToeEnv(agent_player=X, opponent=None)
    movers = {int(env.reset(seed=s)[0]["to_play"][0]) for s in range(30)}
    assert movers == {X, O}


def test_self_play_win():
    env = TicTacToeEnv(agent_player=X, opponent=None)
    env.reset(seed=0, options={"first_player": X})
    for a in (0, 3, 1, 4):
        _, reward, terminated, _, _ = env.step(a)
        assert reward == 0.0 and not terminated
    _, reward, terminated, truncated, info = env.step(2)
    assert terminated and not truncated
    assert reward == 1.0
    assert info["winner"] == X
    assert info["terminal_reason"] == "win"
    with pytest.raises(RuntimeError):
        env.step(5)


def test_self_play_loss_from_agent_view():
    env = TicTacToeEnv(agent_player=O, opponent=None)
    env.reset(seed=0, options={"first_player": X})
    for a in (0, 3, 1, 4):
        env.step(a)
    _, reward, terminated, _, info = env.step(2)
    assert terminated and reward == -1.0
    assert info["terminal_reason"] == "loss"


def test_illegal_move_ends_episode():
    env = TicTacToeEnv(agent_player=X, opponent=None)
    env.reset(seed=0, options={"first_player": X})
    env.step(4)
    _, reward, terminated, _, info = env.step(4)
    assert terminated and reward == -1.0 and info["illegal"]


def test_illegal_move_ignored_when_configured():
    env = TicTacToeEnv(agent_player=X, opponent=None, illegal_move_ends=False)
    env.reset(seed=0, options={"first_player": X})
    env.step(4)
    obs, reward, terminated, _, info = env.step(9)
    assert not terminated and reward == 0.0 and info["illegal"]
    assert obs["to_play"][0] == O


def test_info_reports_blocking_move():
    env = TicTacToeEnv(agent_player=X, opponent=None)
    env.reset(seed=0, options={"first_player": X})
    env.step(0)
    env.step(4)
    _, _, _, _, info = env.step(1)
    # O to move, X threatens (0, 2)
    assert info["state_key"] == "XX--O----"
    assert info["blocking_move"] == (0, 2)


def test_minimax_takes_the_win():
    board = (X, X, 0, O, O, 0, 0, 0, 0)
    assert minimax_actions(board, X) == [2]
    assert minimax_value((0,) * 9, X, X) == 0


@pytest.mark.parametrize("agent_player", [X, O])
def test_perfect_opponent_never_loses(agent_player):
    rng = np.random.default_rng(1)
    env = TicTacToeEnv(agent_player=agent_player, opponent="perfect")
    for g in range(10):
        _, info = env.reset(seed=g)
        terminated = False
        while not terminated:
            action = int(rng.choice(np.flatnonzero(info["legal_action_mask"])))
            _, _, terminated, _, info = env.step(action)
        assert info["winner"] != agent_player


def test_render_ansi():
    env = TicTacToeEnv(agent_player=X, opponent=None, render_mode="ansi")
    env.reset(seed=0, options={"first_player": X})
    env.step(4)
    assert env.render() == "- - -\n- X -\n- - -\nTurn: O"
    assert TicTacToeEnv(render_mode=None).render() is None
