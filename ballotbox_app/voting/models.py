from __future__ import annotations

import uuid

from django.db import models
from django.db.models import Q


class VoterQuerySet(models.QuerySet["Voter"]):
    def active(self) -> VoterQuerySet:
        """Exclude soft-deleted voters."""
        return self.filter(deleted_at__isnull=True)

    def checked_in(self) -> VoterQuerySet:
        return self.filter(vote_method=Voter.VoteMethod.offline)


class Voter(models.Model):
    class Role(models.TextChoices):
        voter = "voter", "Voter"
        operator_tps = "operator_tps", "Polling station operator"
        operator_suara = "operator_suara", "Tally operator"
        operator_chat = "operator_chat", "Support chat operator"
        panitia = "panitia", "Election committee"
        super_admin = "super_admin", "Super admin"

    class AccessType(models.TextChoices):
        online = "online", "Online"
        offline = "offline", "Offline"

    class VoteMethod(models.TextChoices):
        online = "online", "Online"
        offline = "offline", "Offline"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    nim = models.CharField(max_length=64, unique=True, verbose_name="Roll number")
    email = models.EmailField(blank=True, null=True, unique=True)
    name = models.CharField(max_length=255, blank=True, default="")
    batch = models.CharField(max_length=32, blank=True, default="", help_text="Cohort / intake year.")
    role = models.CharField(max_length=32, choices=Role.choices, default=Role.voter)

    # Which channel the voter may use; check-in moves a voter to offline.
    access_type = models.CharField(max_length=16, choices=AccessType.choices, default=AccessType.online)
    has_voted = models.BooleanField(default=False)
    # Which channel was actually used; set iff has_voted.
    vote_method = models.CharField(max_length=16, choices=VoteMethod.choices, blank=True, null=True)
    voted_at = models.DateTimeField(blank=True, null=True)

    checked_in_at = models.DateTimeField(blank=True, null=True)
    # Operator id; not a FK so deleting an operator never touches attendance records.
    checked_in_by = models.UUIDField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    deleted_at = models.DateTimeField(blank=True, null=True)

    objects = VoterQuerySet.as_manager()

    class Meta:
        db_table = "voters"
        ordering = ("nim",)
        constraints = [
            models.CheckConstraint(
                condition=(Q(has_voted=True) & Q(vote_method__isnull=False))
                | (Q(has_voted=False) & Q(vote_method__isnull=True)),
                name="voter_vote_method_iff_has_voted",
            ),
        ]
        indexes = [
            models.Index(fields=["vote_method"], name="voter_vote_method"),
        ]

    def __str__(self) -> str:
        return f"{self.nim} ({self.name})" if self.name else self.nim

    def save(self, *args, **kwargs) -> None:
        # Emails are matched case-insensitively at OTP time.
        if self.email is not None:
            self.email = self.email.strip().lower() or None
        super().save(*args, **kwargs)


class CandidateQuerySet(models.QuerySet["Candidate"]):
    def active(self) -> CandidateQuerySet:
        return self.filter(deleted_at__isnull=True)


class Candidate(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.PositiveSmallIntegerField(unique=True, help_text="Ballot position.")
    name = models.CharField(max_length=255)
    vision = models.TextField(blank=True, default="")
    mission = models.TextField(blank=True, default="")
    photo_url = models.URLField(blank=True, default="", max_length=2048)
    created_at = models.DateTimeField(auto_now_add=True)
    deleted_at = models.DateTimeField(blank=True, null=True)

    objects = CandidateQuerySet.as_manager()

    class Meta:
        db_table = "candidates"
        ordering = ("order_number",)

    def __str__(self) -> str:
        return f"{self.order_number}. {self.name}"


class Vote(models.Model):
    class Source(models.TextChoices):
        online = "online", "Online"
        offline = "offline", "Offline"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Intentionally no voter reference: ballots stay unlinkable to voters.
    candidate = models.ForeignKey(Candidate, on_delete=models.PROTECT, related_name="votes")
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)
    source = models.CharField(max_length=16, choices=Source.choices, default=Source.online)

    class Meta:
        db_table = "votes"
        indexes = [
            models.Index(fields=["source"], name="vote_source"),
            models.Index(fields=["candidate", "source"], name="vote_candidate_source"),
        ]

    def __str__(self) -> str:
        return f"vote:{self.source}:{self.candidate_id}"


class OfflineVoteLog(models.Model):
    """One row per tally-entry operation; the Vote rows it produced are not linked."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    candidate = models.ForeignKey(Candidate, on_delete=models.PROTECT, related_name="offline_vote_logs")
    count = models.PositiveIntegerField()
    input_by = models.UUIDField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "offline_vote_logs"
        ordering = ("created_at", "id")

    def __str__(self) -> str:
        return f"{self.candidate_id} +{self.count}"


class OtpCode(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(db_index=True)
    code = models.CharField(max_length=6)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "otp_codes"
        indexes = [
            models.Index(fields=["email", "code"], name="otp_email_code"),
        ]

    def __str__(self) -> str:
        return f"otp:{self.email}"


class ActionLog(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    actor_id = models.UUIDField(blank=True, null=True)
    actor_name = models.CharField(max_length=255, blank=True, default="")
    action = models.CharField(max_length=64)
    target = models.CharField(max_length=255, blank=True, default="")
    details = models.TextField(blank=True, default="")
    ip_address = models.CharField(max_length=64, blank=True, default="")
    user_agent = models.TextField(blank=True, default="")
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "action_logs"
        ordering = ("-timestamp", "id")

    def __str__(self) -> str:
        return f"{self.action} by {self.actor_name or 'System/Guest'}"


class DeliveryJob(models.Model):
    class Queue(models.TextChoices):
        otp = "otp", "OTP"
        broadcast = "broadcast", "Broadcast"

    class Kind(models.TextChoices):
        send_otp = "send-otp", "Send OTP"
        send_broadcast = "send-broadcast", "Send broadcast"

    class Status(models.TextChoices):
        queued = "queued", "Queued"
        active = "active", "Active"
        failed = "failed", "Failed"

    queue = models.CharField(max_length=16, choices=Queue.choices)
    kind = models.CharField(max_length=32, choices=Kind.choices)
    payload = models.JSONField(default=dict)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.queued)
    attempts_made = models.PositiveSmallIntegerField(default=0)
    max_attempts = models.PositiveSmallIntegerField(default=1)
    available_at = models.DateTimeField()
    started_at = models.DateTimeField(blank=True, null=True)
    failed_at = models.DateTimeField(blank=True, null=True)
    last_error = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "delivery_jobs"
        ordering = ("available_at", "id")
        indexes = [
            models.Index(fields=["queue", "status", "available_at"], name="delivery_due"),
            models.Index(fields=["queue", "status", "failed_at"], name="delivery_failed"),
        ]

    def __str__(self) -> str:
        return f"{self.queue}:{self.kind}:{self.pk}"
