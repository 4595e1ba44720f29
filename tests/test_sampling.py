# tests/test_sampling.py
import random

from src.assessment_engine.core.sampling import sample_without_replacement, shuffle_in_place


def test_sample_draws_distinct_members_of_pool():
    pool = set(range(1, 51))
    drawn = sample_without_replacement(pool, 20, random.Random(7))
    assert len(drawn) == 20
    assert len(set(drawn)) == 20
    assert set(drawn) <= pool


def test_sample_whole_pool_is_a_permutation():
    pool = {3, 1, 4, 15, 9, 26}
    drawn = sample_without_replacement(pool, len(pool), random.Random(1))
    assert sorted(drawn) == sorted(pool)


def test_seeded_draws_are_reproducible():
    pool = set(range(100))
    first = sample_without_replacement(pool, 10, random.Random(42))
    second = sample_without_replacement(set(reversed(range(100))), 10, random.Random(42))
    assert first == second


def test_shuffle_in_place_keeps_every_item():
    items = list(range(10))
    result = shuffle_in_place(items, random.Random(3))
    assert result is items
    assert sorted(items) == list(range(10))


def test_sample_does_not_mutate_pool():
    pool = [5, 4, 3, 2, 1]
    sample_without_replacement(pool, 3, random.Random(0))
    assert pool == [5, 4, 3, 2, 1]
