"""Tests for job id allocation."""

import pytest

from domains.diary import config
from domains.diary.errors import InvalidIdentifierError
from domains.diary.reminders.identifiers import (
    job_id,
    job_ids_for,
    occurrence_index_for,
    reminder_id_for,
)

K = config.JOB_ID_STRIDE


def test_single_occurrence_uses_reminder_id():
    assert job_id(42) == 42
    assert job_id(42, 0) == 42


def test_formula():
    assert job_id(7, 3) == 7 + 3 * K


def test_ids_distinct_for_one_reminder():
    ids = job_ids_for(12345, horizon=30)
    assert len(ids) == 30
    assert len(set(ids)) == 30


def test_no_collisions_across_reminders():
    """Every id below the stride gets a disjoint set of job ids."""
    seen = set()
    for reminder_id in list(range(1, 200)) + [K - 2, K - 1]:
        ids = set(job_ids_for(reminder_id, horizon=30))
        assert not (ids & seen), f"collision for reminder {reminder_id}"
        seen |= ids


def test_largest_id_fits_32_bits():
    assert job_id(K - 1, 29, horizon=30) < 2 ** 31 - 1


@pytest.mark.parametrize("bad_id", [0, -1, -100, None, "5", 1.5, True])
def test_invalid_reminder_ids(bad_id):
    with pytest.raises(InvalidIdentifierError):
        job_id(bad_id, 0)


def test_overflowed_reminder_id_rejected():
    with pytest.raises(InvalidIdentifierError):
        job_id(K, 0)


@pytest.mark.parametrize("index", [-1, 30, 31])
def test_occurrence_index_out_of_range(index):
    with pytest.raises(InvalidIdentifierError):
        job_id(5, index, horizon=30)


def test_reverse_mapping():
    jid = job_id(321, 17)
    assert reminder_id_for(jid) == 321
    assert occurrence_index_for(jid) == 17
