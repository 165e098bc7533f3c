from __future__ import annotations

import datetime
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone

from voting import otp_services
from voting.exceptions import (
    AlreadyVotedError,
    ForbiddenError,
    InvalidOrExpiredError,
    NotFoundError,
    RateLimitedError,
)
from voting.models import DeliveryJob, OtpCode, Voter
from voting.tests.utils_test_data import FakeClockCache, make_voter
from voting.tokens import read_session_token


@override_settings(
    OTP_RATE_LIMIT_LIMIT=3,
    OTP_RATE_LIMIT_WINDOW_SECONDS=3600,
    OTP_COOLDOWN_LIMIT=1,
    OTP_COOLDOWN_WINDOW_SECONDS=60,
    OTP_TTL_SECONDS=300,
    OTP_MANUAL_TTL_SECONDS=600,
)
class OtpServiceTestCase(TestCase):
    def setUp(self) -> None:
        self.cache = FakeClockCache()
        for patcher in (
            patch("voting.rate_limit.cache", self.cache),
            patch("voting.rate_limit._now", self.cache.clock),
        ):
            patcher.start()
            self.addCleanup(patcher.stop)
        self.voter = make_voter(nim="0110221001", email="alice@student.example.org", name="Alice")


class RequestOtpTests(OtpServiceTestCase):
    def test_issues_six_digit_code_with_five_minute_expiry(self) -> None:
        before = timezone.now()
        issue = otp_services.request_otp("Alice@Student.Example.org ")

        self.assertEqual(issue.email, "alice@student.example.org")
        self.assertRegex(issue.code, r"^\d{6}$")
        self.assertTrue(
            before + datetime.timedelta(seconds=299) <= issue.expires_at <= timezone.now() + datetime.timedelta(seconds=300)
        )
        self.assertTrue(OtpCode.objects.filter(email=issue.email, code=issue.code).exists())

    def test_enqueues_delivery_job_after_commit(self) -> None:
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            issue = otp_services.request_otp(self.voter.email)

        self.assertEqual(len(callbacks), 1)
        job = DeliveryJob.objects.get()
        self.assertEqual(job.queue, DeliveryJob.Queue.otp)
        self.assertEqual(job.kind, DeliveryJob.Kind.send_otp)
        self.assertEqual(job.payload["email"], self.voter.email)
        self.assertEqual(job.payload["otp"], issue.code)
        self.assertEqual(job.payload["name"], "Alice")
        self.assertEqual(job.max_attempts, 3)

    def test_enqueue_failure_does_not_fail_issuance(self) -> None:
        with (
            patch("voting.otp_services.enqueue_otp_email", side_effect=DatabaseError("queue down")),
            self.assertLogs("voting.otp_services", level="ERROR"),
            self.captureOnCommitCallbacks(execute=True),
        ):
            issue = otp_services.request_otp(self.voter.email)

        self.assertTrue(OtpCode.objects.filter(code=issue.code).exists())

    def test_prior_codes_stay_valid(self) -> None:
        first = otp_services.request_otp(self.voter.email)
        self.cache.advance(61)
        second = otp_services.request_otp(self.voter.email)

        self.assertEqual(OtpCode.objects.filter(email=self.voter.email).count(), 2)
        self.assertEqual(
            set(OtpCode.objects.values_list("code", flat=True)),
            {first.code, second.code},
        )

    def test_unknown_email_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            otp_services.request_otp("nobody@student.example.org")

    def test_soft_deleted_voter_is_not_found(self) -> None:
        Voter.objects.filter(pk=self.voter.pk).update(deleted_at=timezone.now())

        with self.assertRaises(NotFoundError):
            otp_services.request_otp(self.voter.email)

    def test_voter_who_already_voted_is_rejected(self) -> None:
        Voter.objects.filter(pk=self.voter.pk).update(has_voted=True, vote_method=Voter.VoteMethod.online)

        with self.assertRaises(AlreadyVotedError):
            otp_services.request_otp(self.voter.email)

    def test_offline_voter_is_rejected_before_any_counter_is_touched(self) -> None:
        Voter.objects.filter(pk=self.voter.pk).update(access_type=Voter.AccessType.offline)

        with self.assertRaises(ForbiddenError):
            otp_services.request_otp(self.voter.email)

        self.assertEqual(self.cache.entries, {})
        self.assertFalse(OtpCode.objects.exists())


class OtpQuotaTests(OtpServiceTestCase):
    def test_fourth_request_in_window_is_rate_limited(self) -> None:
        for _ in range(3):
            otp_services.request_otp(self.voter.email)
            self.cache.advance(61)

        with self.assertRaises(RateLimitedError) as ctx:
            otp_services.request_otp(self.voter.email)

        self.assertEqual(ctx.exception.retry_after, 3600 - 183)
        self.assertEqual(OtpCode.objects.count(), 3)

    def test_request_succeeds_again_after_window_expires(self) -> None:
        for _ in range(3):
            otp_services.request_otp(self.voter.email)
            self.cache.advance(61)
        with self.assertRaises(RateLimitedError):
            otp_services.request_otp(self.voter.email)

        self.cache.advance(3600)
        otp_services.request_otp(self.voter.email)

        self.assertEqual(OtpCode.objects.count(), 4)

    def test_second_request_within_cooldown_reports_remaining_seconds(self) -> None:
        otp_services.request_otp(self.voter.email)
        self.cache.advance(10)

        with self.assertRaises(RateLimitedError) as ctx:
            otp_services.request_otp(self.voter.email)

        self.assertEqual(ctx.exception.retry_after, 50)
        self.assertIn("50 seconds", ctx.exception.message)

    def test_requests_61_seconds_apart_both_succeed(self) -> None:
        otp_services.request_otp(self.voter.email)
        self.cache.advance(61)
        otp_services.request_otp(self.voter.email)

        self.assertEqual(OtpCode.objects.count(), 2)

    def test_reset_clears_quota_and_cooldown(self) -> None:
        otp_services.request_otp(self.voter.email)
        with self.assertRaises(RateLimitedError):
            otp_services.request_otp(self.voter.email)

        otp_services.reset_otp_limit(self.voter.email.upper())
        otp_services.request_otp(self.voter.email)

        self.assertEqual(OtpCode.objects.count(), 2)


class ManualOtpTests(OtpServiceTestCase):
    def test_manual_issue_skips_rate_limits_and_uses_ten_minute_ttl(self) -> None:
        issues = [otp_services.issue_manual_otp(self.voter.nim) for _ in range(5)]

        self.assertEqual(self.cache.entries, {})
        self.assertEqual(OtpCode.objects.count(), 5)
        remaining = issues[-1].expires_at - timezone.now()
        self.assertGreater(remaining, datetime.timedelta(seconds=590))
        self.assertLessEqual(remaining, datetime.timedelta(seconds=600))

    def test_manual_issue_accepts_email_identifier(self) -> None:
        issue = otp_services.issue_manual_otp("ALICE@student.example.org")

        self.assertEqual(issue.email, self.voter.email)

    def test_manual_issue_requires_an_email_on_file(self) -> None:
        voter = make_voter(email=None)

        with self.assertRaises(otp_services.VotingError):
            otp_services.issue_manual_otp(voter.nim)

    def test_manual_issue_refuses_checked_in_voter(self) -> None:
        Voter.objects.filter(pk=self.voter.pk).update(
            has_voted=True,
            vote_method=Voter.VoteMethod.offline,
            access_type=Voter.AccessType.offline,
        )

        with self.assertRaises(AlreadyVotedError):
            otp_services.issue_manual_otp(self.voter.nim)

    def test_manual_issue_unknown_voter(self) -> None:
        with self.assertRaises(NotFoundError):
            otp_services.issue_manual_otp("9999999999")


class VerifyOtpTests(OtpServiceTestCase):
    def test_round_trip_succeeds_once_then_replay_fails(self) -> None:
        issue = otp_services.request_otp(self.voter.email)

        session = otp_services.verify_otp(self.voter.email, issue.code)

        principal = read_session_token(session.token)
        self.assertEqual(principal.id, str(self.voter.id))
        self.assertEqual(principal.nim, self.voter.nim)
        self.assertEqual(principal.role, Voter.Role.voter)
        with self.assertRaises(InvalidOrExpiredError):
            otp_services.verify_otp(self.voter.email, issue.code)

    def test_consuming_one_code_invalidates_sibling_codes(self) -> None:
        first = otp_services.request_otp(self.voter.email)
        self.cache.advance(61)
        second = otp_services.request_otp(self.voter.email)

        otp_services.verify_otp(self.voter.email, first.code)

        self.assertFalse(OtpCode.objects.filter(email=self.voter.email).exists())
        with self.assertRaises(InvalidOrExpiredError):
            otp_services.verify_otp(self.voter.email, second.code)

    def test_wrong_code_changes_nothing(self) -> None:
        issue = otp_services.request_otp(self.voter.email)
        wrong = "000000" if issue.code != "000000" else "111111"

        with self.assertRaises(InvalidOrExpiredError):
            otp_services.verify_otp(self.voter.email, wrong)

        self.assertTrue(OtpCode.objects.filter(code=issue.code).exists())

    def test_expired_code_is_rejected(self) -> None:
        OtpCode.objects.create(
            email=self.voter.email,
            code="123456",
            expires_at=timezone.now() - datetime.timedelta(seconds=1),
        )

        with self.assertRaises(InvalidOrExpiredError):
            otp_services.verify_otp(self.voter.email, "123456")

        self.assertEqual(OtpCode.objects.count(), 1)

    def test_offline_voter_cannot_obtain_a_session(self) -> None:
        OtpCode.objects.create(
            email=self.voter.email,
            code="123456",
            expires_at=timezone.now() + datetime.timedelta(minutes=5),
        )
        Voter.objects.filter(pk=self.voter.pk).update(access_type=Voter.AccessType.offline)

        with self.assertRaises(ForbiddenError):
            otp_services.verify_otp(self.voter.email, "123456")

        self.assertFalse(OtpCode.objects.exists())
