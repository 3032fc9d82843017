"""Unit tests for the fixed window counter engine."""

from unittest.mock import Mock

import pytest

from bucket_limiter.algorithms.token_bucket import TokenBucket, parse_rate_limit_string
from bucket_limiter.errors import InvalidArgument, StorageFailure

from conftest import BrokenStorage


def test_allows_exactly_limit_in_window(any_storage, clock) -> None:
    bucket = TokenBucket("api", 3, 60, any_storage, clock=clock)

    assert [bucket.check("a") for _ in range(4)] == [True, True, True, False]


def test_identities_are_independent(any_storage, clock) -> None:
    bucket = TokenBucket("ip", 2, 60, any_storage, clock=clock)

    assert bucket.check("a") is True
    assert bucket.check("a") is True
    assert bucket.check("a") is False
    assert bucket.check("b") is True
    assert bucket.remaining("a") == 0
    assert bucket.remaining("b") == 1


def test_next_window_allows_again(any_storage, clock) -> None:
    bucket = TokenBucket("api", 1, 10, any_storage, clock=clock)

    assert bucket.check("k") is True
    assert bucket.check("k") is False

    clock.return_value = 1010.0
    assert bucket.check("k") is True


def test_burst_straddling_window_boundary(any_storage) -> None:
    clock = Mock(return_value=119.5)
    bucket = TokenBucket("api", 2, 60, any_storage, clock=clock)

    assert bucket.check("k") is True
    assert bucket.check("k") is True

    clock.return_value = 120.0
    assert bucket.check("k") is True
    assert bucket.check("k") is True
    assert bucket.check("k") is False


def test_window_key_includes_name_identity_and_window(memory_storage, clock) -> None:
    bucket = TokenBucket("login", 5, 60, memory_storage, clock=clock)

    assert bucket.window_key("10.0.0.1") == "login:10.0.0.1:16"


def test_rejection_does_not_write(plain_storage, clock) -> None:
    bucket = TokenBucket("api", 2, 60, plain_storage, clock=clock)
    bucket.check("k")
    bucket.check("k")
    writes = list(plain_storage.writes)

    assert bucket.check("k") is False
    assert plain_storage.writes == writes
    assert plain_storage.get("api:k:16") == 2


def test_plain_storage_writes_count_with_period_ttl(plain_storage, clock) -> None:
    bucket = TokenBucket("api", 5, 30, plain_storage, clock=clock)
    bucket.check("k")
    bucket.check("k")

    assert plain_storage.writes == [("api:k:33", 1, 30), ("api:k:33", 2, 30)]


def test_atomic_storage_sets_ttl_on_first_increment_only(memory_storage, clock) -> None:
    bucket = TokenBucket("api", 5, 60, memory_storage, clock=clock)

    bucket.check("k")
    clock.return_value = 1015.0
    bucket.check("k")

    count, expires_at = memory_storage.entries["api:k:16"]
    assert count == 2
    assert expires_at == 1060.0


def test_corrupt_counter_counts_as_empty(any_storage, clock) -> None:
    any_storage.set("api:k:16", "lots")
    bucket = TokenBucket("api", 1, 60, any_storage, clock=clock)

    assert bucket.check("k") is True
    assert bucket.check("k") is False


def test_reset_clears_current_window(any_storage, clock) -> None:
    bucket = TokenBucket("api", 1, 60, any_storage, clock=clock)
    bucket.check("k")

    bucket.reset("k")

    assert bucket.check("k") is True


def test_bucket_info(memory_storage, clock) -> None:
    bucket = TokenBucket("api", 3, 60, memory_storage, clock=clock)
    bucket.check("k")

    assert bucket.get_bucket_info("k") == {
        "count": 1,
        "limit": 3,
        "period": 60,
        "remaining": 2,
        "reset_at": 1020,
    }


@pytest.mark.parametrize("broken", [{"fail_on": {"get"}}, {"fail_on": {"set"}}, {"refuse": {"set"}}])
def test_storage_failure_is_not_a_decision(broken) -> None:
    bucket = TokenBucket("api", 5, 60, BrokenStorage(**broken))

    with pytest.raises(StorageFailure) as exc_info:
        bucket.check("k")
    assert exc_info.value.key.startswith("api:k:")


def test_atomic_increment_failure_raises_storage_failure(memory_storage, clock) -> None:
    memory_storage.atomic_increment = Mock(side_effect=TimeoutError("slow"))
    bucket = TokenBucket("api", 5, 60, memory_storage, clock=clock)

    with pytest.raises(StorageFailure):
        bucket.check("k")


@pytest.mark.parametrize("limit, period", [(0, 60), (-1, 60), (1.5, 60), (5, 0), (5, -10)])
def test_invalid_limit_or_period(memory_storage, limit, period) -> None:
    with pytest.raises(InvalidArgument):
        TokenBucket("api", limit, period, memory_storage)


@pytest.mark.parametrize(
    "rate, expected",
    [("10/minute", (10, 60)), ("5/second", (5, 1)), ("100/hour", (100, 3600)), ("1/day", (1, 86400))],
)
def test_parse_rate_limit_string(rate, expected) -> None:
    assert parse_rate_limit_string(rate) == expected


@pytest.mark.parametrize("rate", ["10", "ten/minute", "10/fortnight"])
def test_parse_rate_limit_string_rejects_bad_input(rate) -> None:
    with pytest.raises(InvalidArgument):
        parse_rate_limit_string(rate)


def test_old_windows_do_not_pile_up_in_memory(memory_storage, clock) -> None:
    bucket = TokenBucket("api", 1, 1, memory_storage, clock=clock)

    for second in range(1000):
        clock.return_value = 1000.0 + second
        assert bucket.check("k") is True

    assert len(memory_storage.entries) <= 2


def test_separator_in_name_or_identity_does_not_collide(any_storage, clock) -> None:
    first = TokenBucket("a", 1, 60, any_storage, clock=clock)
    second = TokenBucket("a:b", 1, 60, any_storage, clock=clock)

    assert first.window_key("b:c") != second.window_key("c")
    assert first.check("b:c") is True
    assert second.check("c") is True
