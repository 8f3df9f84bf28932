"""Tests for retry with exponential backoff."""

import pytest

from family_privacy.utils.retry import backoff_delays, retry_with_backoff


class Flaky:
    """Callable failing a fixed number of times."""

    __name__ = "deliver"

    def __init__(self, failures, error=ConnectionError):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error("unavailable")
        return "delivered"


class TestRetryWithBackoff:
    """Bounded retries."""

    def test_succeeds_after_transient_failures(self):
        """Test the call is retried until it succeeds."""
        delays = []
        flaky = Flaky(failures=2)
        wrapped = retry_with_backoff(
            max_retries=3, initial_delay=1.0, jitter=False, sleep=delays.append
        )(flaky)

        assert wrapped() == "delivered"
        assert flaky.calls == 3
        assert delays == [1.0, 2.0]

    def test_attempts_are_bounded(self):
        """Test the last error is raised after max_retries + 1 attempts."""
        flaky = Flaky(failures=100)
        wrapped = retry_with_backoff(max_retries=2, jitter=False, sleep=lambda _: None)(flaky)

        with pytest.raises(ConnectionError):
            wrapped()

        assert flaky.calls == 3

    def test_delay_is_capped(self):
        """Test delays never exceed max_delay."""
        delays = []
        wrapped = retry_with_backoff(
            max_retries=4,
            initial_delay=5.0,
            max_delay=12.0,
            jitter=False,
            sleep=delays.append,
        )(Flaky(failures=4))

        wrapped()

        assert delays == [5.0, 10.0, 12.0, 12.0]

    def test_jitter_stays_within_range(self):
        """Test jittered delays stay between half and one and a half times the delay."""
        delays = []
        wrapped = retry_with_backoff(
            max_retries=1, initial_delay=2.0, jitter=True, sleep=delays.append
        )(Flaky(failures=1))

        wrapped()

        assert 1.0 <= delays[0] <= 3.0

    def test_other_exceptions_are_not_retried(self):
        """Test only the listed exceptions trigger a retry."""
        flaky = Flaky(failures=1, error=KeyError)
        wrapped = retry_with_backoff(
            exceptions=(ConnectionError,), sleep=lambda _: None
        )(flaky)

        with pytest.raises(KeyError):
            wrapped()

        assert flaky.calls == 1

    def test_on_retry_called_before_each_retry(self):
        """Test the hook sees every retried failure."""
        seen = []
        wrapped = retry_with_backoff(
            max_retries=3,
            jitter=False,
            sleep=lambda _: None,
            on_retry=lambda attempt, error, delay: seen.append((attempt, str(error), delay)),
        )(Flaky(failures=2))

        wrapped()

        assert seen == [(1, "unavailable", 1.0), (2, "unavailable", 2.0)]


class TestBackoffDelays:
    """Delay schedule."""

    def test_exponential_schedule(self):
        """Test delays grow by the base up to the cap."""
        assert list(backoff_delays(5, initial_delay=1.0, max_delay=5.0, jitter=False)) == [
            1.0,
            2.0,
            4.0,
            5.0,
            5.0,
        ]

    def test_no_retries(self):
        """Test zero retries yields nothing."""
        assert list(backoff_delays(0)) == []
