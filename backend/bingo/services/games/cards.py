"""Card generation and the B-I-N-G-O letter bands."""
import random
from typing import List, Optional

from bingo.errors import ValidationError

LETTERS = ('B', 'I', 'N', 'G', 'O')
COLUMN_RANGES = ((1, 15), (16, 30), (31, 45), (46, 60), (61, 75))
CARD_SIZE = 5
FREE_CELL = (2, 2)
LOWEST_NUMBER = 1
HIGHEST_NUMBER = 75

_system_random = random.SystemRandom()


def generate_card(rng: Optional[random.Random] = None) -> List[List[int]]:
    """Return a fresh 5x5 card as a list of rows.

    Each column gets 5 distinct numbers sampled without replacement from
    its own 15-number band; the columns are then transposed into rows.
    The center keeps its number but is always treated as marked.
    """
    rng = rng or _system_random
    columns = [rng.sample(range(low, high + 1), CARD_SIZE) for low, high in COLUMN_RANGES]
    return [[columns[col][row] for col in range(CARD_SIZE)] for row in range(CARD_SIZE)]


def letter_for(number: int) -> str:
    if not isinstance(number, int) or isinstance(number, bool) or not LOWEST_NUMBER <= number <= HIGHEST_NUMBER:
        raise ValidationError(f"Number must be between {LOWEST_NUMBER} and {HIGHEST_NUMBER}, got {number!r}")
    for letter, (low, high) in zip(LETTERS, COLUMN_RANGES):
        if low <= number <= high:
            return letter
