import random

from portfolio.modules.tetris.engine import (
    LINE_POINTS, MIN_SPEED, TetrisGame, drop_interval_for_level, leaderboard_submitter,
)
from portfolio.modules.tetris.pieces import BOARD_HEIGHT, BOARD_WIDTH, new_piece, rotate_matrix


def started_game(kind="O"):
    game = TetrisGame(rng=random.Random(7))
    game.start()
    game.current_piece = new_piece(kind)
    return game


def test_new_piece_is_centered_at_top():
    piece = new_piece("I")
    assert piece.x == 3
    assert piece.y == 0
    assert piece.color == 1


def test_rotate_matrix_clockwise():
    assert rotate_matrix([[0, 3, 0], [3, 3, 3]]) == [[3, 0], [3, 3], [3, 0]]


def test_clear_full_row_shifts_rows_above_by_one():
    game = started_game()
    marker = [0] * BOARD_WIDTH
    marker[2] = 5
    game.board[BOARD_HEIGHT - 2] = list(marker)
    game.board[BOARD_HEIGHT - 1] = [1] * BOARD_WIDTH

    cleared = game.clear_lines()

    assert cleared == 1
    assert game.board[BOARD_HEIGHT - 1] == marker
    assert game.board[0] == [0] * BOARD_WIDTH
    assert len(game.board) == BOARD_HEIGHT


def test_clear_non_adjacent_rows():
    game = started_game()
    game.board[BOARD_HEIGHT - 1] = [1] * BOARD_WIDTH
    game.board[BOARD_HEIGHT - 2][0] = 4
    game.board[BOARD_HEIGHT - 3] = [2] * BOARD_WIDTH

    assert game.clear_lines() == 2
    assert game.board[BOARD_HEIGHT - 1][0] == 4
    assert sum(1 for row in game.board if any(row)) == 1


def test_score_multiplied_by_level():
    game = started_game()
    game.level = 3
    game.update_score(4)
    assert game.score == LINE_POINTS[4] * 3


def test_level_up_every_ten_lines():
    game = started_game()
    game.lines = 10
    game.update_level()
    assert game.level == 2
    assert game.drop_interval == 900


def test_drop_interval_curve():
    assert drop_interval_for_level(1) == 1000
    assert drop_interval_for_level(10) == 100
    assert drop_interval_for_level(11) == 80
    assert drop_interval_for_level(15) == MIN_SPEED
    assert drop_interval_for_level(100) == MIN_SPEED


def test_moves_are_blocked_by_walls():
    game = started_game("O")
    while game.move_piece(-1, 0):
        pass
    assert game.current_piece.x == 0
    assert not game.move_piece(-1, 0)


def test_rotation_against_wall_uses_kick():
    game = started_game("I")
    game.current_piece.shape = rotate_matrix(game.current_piece.shape)  # vertical
    game.current_piece.x = BOARD_WIDTH - 2
    game.current_piece.y = 5

    assert game.rotate_piece()
    assert game.current_piece.x == BOARD_WIDTH - 4
    cells = list(game.current_piece.cells())
    assert all(0 <= x < BOARD_WIDTH for x, _ in cells)


def test_rotation_reverts_when_no_kick_fits():
    game = started_game("I")
    game.current_piece.shape = rotate_matrix(game.current_piece.shape)
    game.current_piece.x = 4
    game.current_piece.y = 10
    for y in range(BOARD_HEIGHT):
        for x in range(BOARD_WIDTH):
            if x != 4:
                game.board[y][x] = 7
    before = (game.current_piece.shape, game.current_piece.x, game.current_piece.y)

    assert not game.rotate_piece()
    assert (game.current_piece.shape, game.current_piece.x, game.current_piece.y) == before


def test_hard_drop_locks_piece_on_floor():
    game = started_game("O")
    distance = game.hard_drop()
    assert distance == BOARD_HEIGHT - 2
    assert game.board[BOARD_HEIGHT - 1][4] == 2
    assert game.board[BOARD_HEIGHT - 2][5] == 2


def test_tick_applies_gravity_after_interval():
    game = started_game("O")
    game.tick(500)
    assert game.current_piece.y == 0
    game.tick(600)
    assert game.current_piece.y == 1


def test_paused_game_ignores_input():
    game = started_game("O")
    game.toggle_pause()
    assert not game.move_piece(1, 0)
    game.tick(5000)
    assert game.current_piece.y == 0


def test_spawn_collision_ends_game_and_reports_score():
    scores = []
    game = TetrisGame(rng=random.Random(1), on_game_over=scores.append)
    game.start()
    game.score = 420
    for x in range(BOARD_WIDTH):
        game.board[0][x] = 3
        game.board[1][x] = 3
    game.spawn_piece()

    assert game.game_over
    assert not game.game_running
    assert scores == [420]


def test_leaderboard_submitter_skips_zero_scores():
    class Recorder:
        def __init__(self):
            self.calls = []

        def add_score(self, name, score):
            self.calls.append((name, score))
            return {"rank": 1}

    recorder = Recorder()
    submit = leaderboard_submitter(recorder, "ada")
    submit(0)
    submit(300)
    assert recorder.calls == [("ada", 300)]


def test_ghost_row_and_snapshot():
    game = started_game("O")
    game.board[BOARD_HEIGHT - 1][4] = 6

    assert game.ghost_y() == BOARD_HEIGHT - 3
    board = game.snapshot()
    assert board[0][4] == board[1][5] == 2
    assert game.board[0][4] == 0
