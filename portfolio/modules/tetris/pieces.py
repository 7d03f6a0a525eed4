from dataclasses import dataclass
from typing import Dict, List, Tuple

BOARD_WIDTH = 10
BOARD_HEIGHT = 20

Matrix = List[List[int]]

# Colour codes double as cell values on the board; 0 is an empty cell
COLORS: Dict[int, str] = {
    0: "#000000",
    1: "#FF0000",  # I
    2: "#00FF00",  # O
    3: "#0000FF",  # T
    4: "#FFFF00",  # S
    5: "#FF00FF",  # Z
    6: "#00FFFF",  # J
    7: "#FFA500",  # L
}

TETROMINOES: Dict[str, Matrix] = {
    "I": [[1, 1, 1, 1]],
    "O": [[2, 2],
          [2, 2]],
    "T": [[0, 3, 0],
          [3, 3, 3]],
    "S": [[0, 4, 4],
          [4, 4, 0]],
    "Z": [[5, 5, 0],
          [0, 5, 5]],
    "J": [[6, 0, 0],
          [6, 6, 6]],
    "L": [[0, 0, 7],
          [7, 7, 7]],
}

# Tried in order until the rotated piece fits
WALL_KICKS: List[Tuple[int, int]] = [
    (0, 0),
    (-1, 0),
    (1, 0),
    (-2, 0),
    (2, 0),
    (0, -1),
    (-1, -1),
    (1, -1),
    (0, 1),
]


@dataclass
class Piece:
    kind: str
    shape: Matrix
    color: int
    x: int
    y: int = 0

    def cells(self, dx: int = 0, dy: int = 0):
        """Board coordinates of the piece's filled cells, optionally offset"""
        for row_index, row in enumerate(self.shape):
            for col_index, value in enumerate(row):
                if value:
                    yield self.x + dx + col_index, self.y + dy + row_index


def new_piece(kind: str) -> Piece:
    shape = [list(row) for row in TETROMINOES[kind]]
    color = next(value for row in shape for value in row if value)
    x = BOARD_WIDTH // 2 - len(shape[0]) // 2
    return Piece(kind=kind, shape=shape, color=color, x=x)


def rotate_matrix(matrix: Matrix) -> Matrix:
    """Rotate clockwise"""
    rows = len(matrix)
    cols = len(matrix[0])
    rotated = [[0] * rows for _ in range(cols)]
    for i in range(rows):
        for j in range(cols):
            rotated[j][rows - 1 - i] = matrix[i][j]
    return rotated
