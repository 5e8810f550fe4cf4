"""Win pattern evaluation.

Pure functions: the caller decides which marks count (the session engine
passes the card's marks restricted to the numbers actually called).
"""
from typing import Callable, Iterable, List

from .cards import CARD_SIZE, FREE_CELL

PATTERN_TYPES = (
    'horizontal_line',
    'vertical_line',
    'diagonal',
    'four_corners',
    'full_card',
    'x_pattern',
)

CellCheck = Callable[[int, int], bool]

_LAST = CARD_SIZE - 1


def _horizontal_line(is_marked: CellCheck) -> bool:
    return any(all(is_marked(row, col) for col in range(CARD_SIZE)) for row in range(CARD_SIZE))


def _vertical_line(is_marked: CellCheck) -> bool:
    return any(all(is_marked(row, col) for row in range(CARD_SIZE)) for col in range(CARD_SIZE))


def _main_diagonal(is_marked: CellCheck) -> bool:
    return all(is_marked(i, i) for i in range(CARD_SIZE))


def _anti_diagonal(is_marked: CellCheck) -> bool:
    return all(is_marked(i, _LAST - i) for i in range(CARD_SIZE))


def _diagonal(is_marked: CellCheck) -> bool:
    return _main_diagonal(is_marked) or _anti_diagonal(is_marked)


def _four_corners(is_marked: CellCheck) -> bool:
    return (is_marked(0, 0) and is_marked(0, _LAST)
            and is_marked(_LAST, 0) and is_marked(_LAST, _LAST))


def _full_card(is_marked: CellCheck) -> bool:
    return all(is_marked(row, col) for row in range(CARD_SIZE) for col in range(CARD_SIZE))


def _x_pattern(is_marked: CellCheck) -> bool:
    return _main_diagonal(is_marked) and _anti_diagonal(is_marked)


_CHECKS = {
    'horizontal_line': _horizontal_line,
    'vertical_line': _vertical_line,
    'diagonal': _diagonal,
    'four_corners': _four_corners,
    'full_card': _full_card,
    'x_pattern': _x_pattern,
}


def is_winner(card: List[List[int]], marked: Iterable[int], pattern_type: str) -> bool:
    """True if ``card`` with ``marked`` numbers satisfies ``pattern_type``.

    Unknown pattern types never win.
    """
    check = _CHECKS.get(pattern_type)
    if check is None:
        return False
    marked_set = set(marked)

    def is_marked(row: int, col: int) -> bool:
        if (row, col) == FREE_CELL:
            return True
        return card[row][col] in marked_set

    return check(is_marked)
