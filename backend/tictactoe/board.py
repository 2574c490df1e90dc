"""
Правила крестиков-ноликов: проверка хода, победа/ничья, изменение доски.
Ничего не знает о комнатах и игроках.
"""
from .constants import BOARD_SIZE, Mark, Outcome

Board = list[list[Mark | None]]

# Строки, затем столбцы, затем диагонали — порядок проверки фиксирован
_LINES: list[list[tuple[int, int]]] = (
    [[(r, c) for c in range(BOARD_SIZE)] for r in range(BOARD_SIZE)]
    + [[(r, c) for r in range(BOARD_SIZE)] for c in range(BOARD_SIZE)]
    + [
        [(i, i) for i in range(BOARD_SIZE)],
        [(i, BOARD_SIZE - 1 - i) for i in range(BOARD_SIZE)],
    ]
)


def empty_board() -> Board:
    return [[None for _ in range(BOARD_SIZE)] for _ in range(BOARD_SIZE)]


def other_mark(mark: Mark) -> Mark:
    return Mark.O if mark == Mark.X else Mark.X


def is_legal(board: Board, row: int, col: int) -> bool:
    """Клетка на доске и свободна."""
    if not isinstance(row, int) or not isinstance(col, int):
        return False
    if isinstance(row, bool) or isinstance(col, bool):
        return False
    if not (0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE):
        return False
    return board[row][col] is None


def place(board: Board, row: int, col: int, mark: Mark) -> None:
    board[row][col] = mark


def evaluate(board: Board) -> Outcome | None:
    """
    Исход партии по текущей доске.
    Линия из трёх одинаковых меток — победа этой метки; заполненная доска без
    линии — ничья; иначе None (игра продолжается).
    """
    for line in _LINES:
        first = board[line[0][0]][line[0][1]]
        if first is None:
            continue
        if all(board[r][c] == first for r, c in line[1:]):
            return Outcome(first.value)
    if all(cell is not None for row in board for cell in row):
        return Outcome.DRAW
    return None


def board_stats(board: Board) -> dict:
    total_moves = sum(1 for row in board for cell in row if cell is not None)
    return {
        "total_moves": total_moves,
        "moves_left": BOARD_SIZE * BOARD_SIZE - total_moves,
        "is_active": evaluate(board) is None,
    }
