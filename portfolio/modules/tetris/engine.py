import logging
import random
from typing import Callable, List, Optional

from portfolio.modules.tetris.pieces import (
    BOARD_HEIGHT, BOARD_WIDTH, TETROMINOES, WALL_KICKS, Matrix, Piece, new_piece, rotate_matrix
)

logger = logging.getLogger(__name__)

INITIAL_SPEED = 1000  # Starting drop interval in ms
SPEED_LEVEL_1_TO_10 = 100
SPEED_LEVEL_11_TO_20 = 20
SPEED_LEVEL_21_PLUS = 10
MIN_SPEED = 50

LINE_POINTS = [0, 40, 100, 300, 1200]
LINES_PER_LEVEL = 10


def drop_interval_for_level(level: int) -> int:
    """Gravity interval in ms: steep drop through level 10, gentler after, floored at MIN_SPEED"""
    if level <= 10:
        interval = INITIAL_SPEED - (level - 1) * SPEED_LEVEL_1_TO_10
    elif level <= 20:
        level_10 = INITIAL_SPEED - 9 * SPEED_LEVEL_1_TO_10
        interval = level_10 - (level - 10) * SPEED_LEVEL_11_TO_20
    else:
        level_20 = INITIAL_SPEED - 9 * SPEED_LEVEL_1_TO_10 - 10 * SPEED_LEVEL_11_TO_20
        interval = level_20 - (level - 20) * SPEED_LEVEL_21_PLUS
    return max(MIN_SPEED, interval)


def empty_board() -> Matrix:
    return [[0] * BOARD_WIDTH for _ in range(BOARD_HEIGHT)]


class TetrisGame:
    """Falling-block state machine: spawn, move/rotate/drop, lock, clear, spawn again."""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        on_game_over: Optional[Callable[[int], None]] = None,
    ):
        self.rng = rng or random.Random()
        self.on_game_over = on_game_over
        self.board: Matrix = empty_board()
        self.current_piece: Optional[Piece] = None
        self.next_piece: Optional[Piece] = None
        self.score = 0
        self.lines = 0
        self.level = 1
        self.drop_counter = 0.0
        self.drop_interval = INITIAL_SPEED
        self.game_running = False
        self.game_paused = False
        self.game_started = False
        self.game_over = False

    @property
    def accepting_input(self) -> bool:
        return self.game_running and not self.game_paused

    def start(self) -> None:
        self.game_running = True
        self.game_started = True
        self.game_paused = False
        self.game_over = False
        self.spawn_piece()

    def toggle_pause(self) -> None:
        if not self.game_started or self.game_over:
            return
        self.game_paused = not self.game_paused

    def reset(self) -> None:
        self.game_running = False
        self.game_started = False
        self.game_paused = False
        self.game_over = False
        self.score = 0
        self.lines = 0
        self.level = 1
        self.drop_counter = 0.0
        self.drop_interval = INITIAL_SPEED
        self.board = empty_board()
        self.current_piece = None
        self.next_piece = None

    def create_random_piece(self) -> Piece:
        return new_piece(self.rng.choice(list(TETROMINOES)))

    def spawn_piece(self) -> None:
        self.current_piece = self.next_piece or self.create_random_piece()
        self.next_piece = self.create_random_piece()
        if self.check_collision(self.current_piece, 0, 0):
            self._end_game()

    def check_collision(self, piece: Piece, dx: int, dy: int) -> bool:
        for x, y in piece.cells(dx, dy):
            if x < 0 or x >= BOARD_WIDTH or y >= BOARD_HEIGHT:
                return True
            # cells above the board are allowed
            if y >= 0 and self.board[y][x]:
                return True
        return False

    def move_piece(self, dx: int, dy: int) -> bool:
        if not self.accepting_input or self.current_piece is None:
            return False
        if self.check_collision(self.current_piece, dx, dy):
            return False
        self.current_piece.x += dx
        self.current_piece.y += dy
        return True

    def rotate_piece(self) -> bool:
        """Rotate clockwise, trying each wall kick in turn; revert if none fits"""
        piece = self.current_piece
        if not self.accepting_input or piece is None:
            return False
        original_shape, original_x, original_y = piece.shape, piece.x, piece.y
        piece.shape = rotate_matrix(original_shape)
        for kick_x, kick_y in WALL_KICKS:
            piece.x = original_x + kick_x
            piece.y = original_y + kick_y
            if not self.check_collision(piece, 0, 0):
                return True
        piece.shape, piece.x, piece.y = original_shape, original_x, original_y
        return False

    def soft_drop(self) -> bool:
        return self.move_piece(0, 1)

    def hard_drop(self) -> int:
        """Drop to the floor and lock; returns the number of rows fallen"""
        if not self.accepting_input or self.current_piece is None:
            return 0
        distance = 0
        while not self.check_collision(self.current_piece, 0, 1):
            self.current_piece.y += 1
            distance += 1
        self.place_piece()
        return distance

    def place_piece(self) -> int:
        """Lock the current piece, clear lines, spawn the next one"""
        if self.current_piece is None:
            return 0
        for x, y in self.current_piece.cells():
            if y >= 0:
                self.board[y][x] = self.current_piece.color
        cleared = self.clear_lines()
        self.spawn_piece()
        return cleared

    def clear_lines(self) -> int:
        lines_cleared = 0
        y = BOARD_HEIGHT - 1
        while y >= 0:
            if all(self.board[y]):
                del self.board[y]
                self.board.insert(0, [0] * BOARD_WIDTH)
                lines_cleared += 1
                # the row that shifted into y needs checking too
                continue
            y -= 1
        if lines_cleared:
            self.lines += lines_cleared
            self.update_score(lines_cleared)
            self.update_level()
        return lines_cleared

    def update_score(self, lines_cleared: int) -> None:
        self.score += LINE_POINTS[lines_cleared] * self.level

    def update_level(self) -> None:
        new_level = self.lines // LINES_PER_LEVEL + 1
        if new_level > self.level:
            old_level = self.level
            self.level = new_level
            self.drop_interval = drop_interval_for_level(self.level)
            logger.info(f"Level up {old_level} -> {self.level} (drop interval {self.drop_interval}ms)")

    def tick(self, delta_ms: float) -> None:
        """Advance gravity by the elapsed frame time"""
        if not self.accepting_input:
            return
        self.drop_counter += delta_ms
        if self.drop_counter > self.drop_interval:
            if self.current_piece is not None:
                if self.check_collision(self.current_piece, 0, 1):
                    self.place_piece()
                else:
                    self.current_piece.y += 1
            self.drop_counter = 0.0

    def ghost_y(self) -> Optional[int]:
        """Row the current piece would land on"""
        if self.current_piece is None:
            return None
        dy = 0
        while not self.check_collision(self.current_piece, 0, dy + 1):
            dy += 1
        return self.current_piece.y + dy

    def snapshot(self) -> List[List[int]]:
        """Board with the active piece drawn in"""
        board = [list(row) for row in self.board]
        if self.current_piece is not None and not self.game_over:
            for x, y in self.current_piece.cells():
                if 0 <= y < BOARD_HEIGHT and 0 <= x < BOARD_WIDTH:
                    board[y][x] = self.current_piece.color
        return board

    def _end_game(self) -> None:
        self.game_running = False
        self.game_over = True
        logger.info(f"Game over with score {self.score}, {self.lines} lines, level {self.level}")
        if self.on_game_over is not None:
            self.on_game_over(self.score)


def leaderboard_submitter(client, player_name: str) -> Callable[[int], None]:
    """Game-over callback that posts positive scores for player_name through a ScoreClient"""
    def submit(score: int) -> None:
        if not player_name or score <= 0:
            return
        try:
            result = client.add_score(player_name, score)
            logger.info(f"Score saved for {player_name}: rank {result['rank']}")
        except Exception as e:
            logger.error(f"Failed to save score: {e}")
    return submit
