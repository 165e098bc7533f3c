from __future__ import annotations

from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase, override_settings

from voting.models import ActionLog, OtpCode, Vote, Voter
from voting.tests.utils_test_data import FakeClockCache, auth_headers, make_candidate, make_voter


@override_settings(
    OTP_RATE_LIMIT_LIMIT=3,
    OTP_RATE_LIMIT_WINDOW_SECONDS=3600,
    OTP_COOLDOWN_LIMIT=1,
    OTP_COOLDOWN_WINDOW_SECONDS=60,
)
class AuthApiTestCase(TestCase):
    def setUp(self) -> None:
        cache.clear()
        self.clock_cache = FakeClockCache()
        for patcher in (
            patch("voting.rate_limit.cache", self.clock_cache),
            patch("voting.rate_limit._now", self.clock_cache.clock),
        ):
            patcher.start()
            self.addCleanup(patcher.stop)
        self.voter = make_voter(nim="0110221001", email="alice@student.example.org", name="Alice")

    def post_json(self, path: str, data: dict, caller: Voter | None = None):
        return self.client.post(
            path,
            data=data,
            content_type="application/json",
            headers=auth_headers(caller) if caller is not None else {},
        )


class OtpRequestViewTests(AuthApiTestCase):
    def test_issues_code(self) -> None:
        resp = self.post_json("/api/auth/otp-request", {"email": self.voter.email})

        self.assertEqual(resp.status_code, 200)
        self.assertIn("expiresAt", resp.json())
        self.assertNotIn("otp", resp.json())
        self.assertEqual(OtpCode.objects.count(), 1)

    def test_invalid_email(self) -> None:
        resp = self.post_json("/api/auth/otp-request", {"email": "not-an-email"})

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"message": "Validation failed", "errors": ["Invalid email format"]})

    def test_unknown_email(self) -> None:
        resp = self.post_json("/api/auth/otp-request", {"email": "ghost@student.example.org"})

        self.assertEqual(resp.status_code, 404)

    def test_cooldown_returns_429_with_retry_after(self) -> None:
        self.post_json("/api/auth/otp-request", {"email": self.voter.email})
        self.clock_cache.advance(15)

        resp = self.post_json("/api/auth/otp-request", {"email": self.voter.email})

        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp["Retry-After"], "45")
        self.assertEqual(resp.json()["retryAfter"], 45)


class OtpVerifyViewTests(AuthApiTestCase):
    def test_requires_six_digits(self) -> None:
        resp = self.post_json("/api/auth/otp-verify", {"email": self.voter.email, "otp": "12345"})

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"], ["OTP must be 6 digits"])

    def test_wrong_code(self) -> None:
        resp = self.post_json("/api/auth/otp-verify", {"email": self.voter.email, "otp": "123456"})

        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "The code is invalid or has expired.")

    def test_sign_in_cast_and_see_result(self) -> None:
        candidate = make_candidate(name="Candidate Y", order_number=1)
        self.assertEqual(self.client.get("/api/votes/results").json()["results"][0]["onlineVotes"], 0)

        self.post_json("/api/auth/otp-request", {"email": self.voter.email})
        code = OtpCode.objects.get(email=self.voter.email).code

        resp = self.post_json("/api/auth/otp-verify", {"email": self.voter.email, "otp": code})

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["user"], {"id": str(self.voter.id), "nim": "0110221001", "role": "voter", "hasVoted": False})

        with self.captureOnCommitCallbacks(execute=True):
            resp = self.client.post(
                "/api/votes",
                data={"candidateId": str(candidate.id)},
                content_type="application/json",
                headers={"Authorization": f"Bearer {body['token']}"},
            )

        self.assertEqual(resp.status_code, 200)
        result = self.client.get("/api/votes/results").json()["results"][0]
        self.assertEqual((result["onlineVotes"], result["votes"]), (1, 1))
        self.assertEqual(Vote.objects.count(), 1)

        replay = self.post_json("/api/auth/otp-verify", {"email": self.voter.email, "otp": code})
        self.assertEqual(replay.status_code, 400)


class OperatorOtpViewTests(AuthApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.tps = make_voter(role=Voter.Role.operator_tps, name="Desk A")

    def test_manual_issue_returns_code_and_audits(self) -> None:
        resp = self.post_json("/api/auth/otp-manual", {"nim": self.voter.nim}, self.tps)

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["email"], self.voter.email)
        self.assertTrue(OtpCode.objects.filter(code=body["otp"]).exists())
        log = ActionLog.objects.get()
        self.assertEqual((log.action, log.target, log.actor_name), ("ISSUE_MANUAL_OTP", self.voter.nim, "Desk A"))

    def test_manual_issue_needs_identifier(self) -> None:
        resp = self.post_json("/api/auth/otp-manual", {}, self.tps)

        self.assertEqual(resp.status_code, 400)
        self.assertFalse(ActionLog.objects.exists())

    def test_tally_operator_cannot_issue(self) -> None:
        suara = make_voter(role=Voter.Role.operator_suara)

        resp = self.post_json("/api/auth/otp-manual", {"nim": self.voter.nim}, suara)

        self.assertEqual(resp.status_code, 403)

    def test_reset_limit_lets_voter_request_again(self) -> None:
        self.post_json("/api/auth/otp-request", {"email": self.voter.email})
        self.assertEqual(self.post_json("/api/auth/otp-request", {"email": self.voter.email}).status_code, 429)

        resp = self.post_json("/api/auth/reset-otp-limit", {"email": self.voter.email}, self.tps)

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(ActionLog.objects.get().action, "RESET_OTP_LIMIT")
        self.assertEqual(self.post_json("/api/auth/otp-request", {"email": self.voter.email}).status_code, 200)

    def test_voter_cannot_reset_limit(self) -> None:
        resp = self.post_json("/api/auth/reset-otp-limit", {"email": self.voter.email}, self.voter)

        self.assertEqual(resp.status_code, 403)
