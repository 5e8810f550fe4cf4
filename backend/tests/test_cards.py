import random

import pytest

from bingo.errors import ValidationError
from bingo.services.games.cards import COLUMN_RANGES, generate_card, letter_for


@pytest.mark.parametrize('seed', range(25))
def test_columns_stay_in_their_band(seed):
    card = generate_card(random.Random(seed))
    assert len(card) == 5 and all(len(row) == 5 for row in card)
    for col, (low, high) in enumerate(COLUMN_RANGES):
        column = [card[row][col] for row in range(5)]
        assert len(set(column)) == 5
        assert all(low <= n <= high for n in column)


def test_card_has_25_distinct_numbers():
    card = generate_card(random.Random(7))
    flat = [n for row in card for n in row]
    assert len(set(flat)) == 25
    assert all(1 <= n <= 75 for n in flat)


def test_same_seed_same_card():
    assert generate_card(random.Random(42)) == generate_card(random.Random(42))


def test_default_source_produces_valid_card():
    card = generate_card()
    assert all(1 <= card[row][0] <= 15 for row in range(5))


@pytest.mark.parametrize('number,letter', [
    (1, 'B'), (15, 'B'), (16, 'I'), (30, 'I'), (31, 'N'),
    (45, 'N'), (46, 'G'), (60, 'G'), (61, 'O'), (75, 'O'),
])
def test_letter_bands(number, letter):
    assert letter_for(number) == letter


@pytest.mark.parametrize('bad', [0, 76, -3, True, '12', None, 7.5])
def test_letter_for_rejects_out_of_range(bad):
    with pytest.raises(ValidationError):
        letter_for(bad)
