from __future__ import annotations

from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase

from voting.exceptions import TransientInfraError
from voting.rate_limit import check_rate_limit, reset_rate_limit
from voting.tests.utils_test_data import FakeClockCache


class CheckRateLimitTests(SimpleTestCase):
    def setUp(self) -> None:
        self.cache = FakeClockCache()
        for patcher in (
            patch("voting.rate_limit.cache", self.cache),
            patch("voting.rate_limit._now", self.cache.clock),
        ):
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_counts_down_remaining_then_denies(self) -> None:
        results = [check_rate_limit("otp_limit:a@example.org", 3, 3600) for _ in range(4)]

        self.assertEqual([r.allowed for r in results], [True, True, True, False])
        self.assertEqual([r.remaining for r in results], [2, 1, 0, 0])

    def test_every_call_increments_even_when_denied(self) -> None:
        for _ in range(5):
            check_rate_limit("k", 1, 60)

        self.assertEqual(self.cache.get("k"), 5)

    def test_ttl_reports_time_left_in_window(self) -> None:
        first = check_rate_limit("otp_cooldown:a@example.org", 1, 60)
        self.cache.advance(10)
        second = check_rate_limit("otp_cooldown:a@example.org", 1, 60)

        self.assertEqual(first.ttl, 60)
        self.assertFalse(second.allowed)
        self.assertEqual(second.ttl, 50)

    def test_reapplies_expiry_dropped_by_increment(self) -> None:
        check_rate_limit("k", 3, 60)
        self.cache.advance(20)
        check_rate_limit("k", 3, 60)

        # Window end stays fixed by the first increment.
        self.assertEqual(self.cache.expires_at("k"), 1060.0)

    def test_allows_again_after_window_expires(self) -> None:
        self.assertTrue(check_rate_limit("k", 1, 5).allowed)
        self.assertFalse(check_rate_limit("k", 1, 5).allowed)

        self.cache.advance(6)
        result = check_rate_limit("k", 1, 5)

        self.assertTrue(result.allowed)
        self.assertEqual(result.remaining, 0)
        self.assertEqual(result.ttl, 5)

    def test_denied_retry_near_window_end_does_not_extend_the_window(self) -> None:
        self.assertTrue(check_rate_limit("otp_cooldown:a@example.org", 1, 2).allowed)
        self.cache.advance(1.5)
        denied = check_rate_limit("otp_cooldown:a@example.org", 1, 2)
        self.cache.advance(0.7)
        result = check_rate_limit("otp_cooldown:a@example.org", 1, 2)

        self.assertFalse(denied.allowed)
        self.assertEqual(denied.ttl, 1)
        self.assertTrue(result.allowed)
        self.assertEqual(result.ttl, 2)

    def test_counter_without_window_marker_starts_a_new_window(self) -> None:
        for _ in range(3):
            check_rate_limit("k", 1, 60)
        self.cache.delete("k:expires_at")

        result = check_rate_limit("k", 1, 60)

        self.assertTrue(result.allowed)
        self.assertEqual(self.cache.get("k"), 1)
        self.assertEqual(self.cache.expires_at("k"), 1060.0)

    def test_keys_are_independent(self) -> None:
        self.assertTrue(check_rate_limit("a", 1, 60).allowed)
        self.assertTrue(check_rate_limit("b", 1, 60).allowed)
        self.assertFalse(check_rate_limit("a", 1, 60).allowed)

    def test_reset_clears_counter(self) -> None:
        check_rate_limit("k", 1, 60)
        self.assertFalse(check_rate_limit("k", 1, 60).allowed)

        reset_rate_limit("k")

        self.assertTrue(check_rate_limit("k", 1, 60).allowed)

    def test_rejects_invalid_window(self) -> None:
        with self.assertRaises(ValueError):
            check_rate_limit("k", 1, 0)


class RateLimitStoreUnavailableTests(SimpleTestCase):
    def test_unreachable_store_raises_transient_infra_error(self) -> None:
        broken = MagicMock()
        broken.add.side_effect = ConnectionError("redis down")

        with patch("voting.rate_limit.cache", broken), self.assertLogs("voting.rate_limit", level="ERROR"):
            with self.assertRaises(TransientInfraError):
                check_rate_limit("k", 1, 60)
