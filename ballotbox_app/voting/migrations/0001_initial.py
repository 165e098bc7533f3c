import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Voter",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("nim", models.CharField(max_length=64, unique=True, verbose_name="Roll number")),
                ("email", models.EmailField(blank=True, max_length=254, null=True, unique=True)),
                ("name", models.CharField(blank=True, default="", max_length=255)),
                ("batch", models.CharField(blank=True, default="", help_text="Cohort / intake year.", max_length=32)),
                (
                    "role",
                    models.CharField(
                        choices=[
                            ("voter", "Voter"),
                            ("operator_tps", "Polling station operator"),
                            ("operator_suara", "Tally operator"),
                            ("operator_chat", "Support chat operator"),
                            ("panitia", "Election committee"),
                            ("super_admin", "Super admin"),
                        ],
                        default="voter",
                        max_length=32,
                    ),
                ),
                (
                    "access_type",
                    models.CharField(
                        choices=[("online", "Online"), ("offline", "Offline")],
                        default="online",
                        max_length=16,
                    ),
                ),
                ("has_voted", models.BooleanField(default=False)),
                (
                    "vote_method",
                    models.CharField(
                        blank=True,
                        choices=[("online", "Online"), ("offline", "Offline")],
                        max_length=16,
                        null=True,
                    ),
                ),
                ("voted_at", models.DateTimeField(blank=True, null=True)),
                ("checked_in_at", models.DateTimeField(blank=True, null=True)),
                ("checked_in_by", models.UUIDField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "voters",
                "ordering": ("nim",),
                "indexes": [models.Index(fields=["vote_method"], name="voter_vote_method")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("has_voted", True), ("vote_method__isnull", False))
                        | models.Q(("has_voted", False), ("vote_method__isnull", True)),
                        name="voter_vote_method_iff_has_voted",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Candidate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("order_number", models.PositiveSmallIntegerField(help_text="Ballot position.", unique=True)),
                ("name", models.CharField(max_length=255)),
                ("vision", models.TextField(blank=True, default="")),
                ("mission", models.TextField(blank=True, default="")),
                ("photo_url", models.URLField(blank=True, default="", max_length=2048)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "candidates",
                "ordering": ("order_number",),
            },
        ),
        migrations.CreateModel(
            name="Vote",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("timestamp", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "source",
                    models.CharField(
                        choices=[("online", "Online"), ("offline", "Offline")],
                        default="online",
                        max_length=16,
                    ),
                ),
                (
                    "candidate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="votes",
                        to="voting.candidate",
                    ),
                ),
            ],
            options={
                "db_table": "votes",
                "indexes": [
                    models.Index(fields=["source"], name="vote_source"),
                    models.Index(fields=["candidate", "source"], name="vote_candidate_source"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OfflineVoteLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("count", models.PositiveIntegerField()),
                ("input_by", models.UUIDField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "candidate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="offline_vote_logs",
                        to="voting.candidate",
                    ),
                ),
            ],
            options={
                "db_table": "offline_vote_logs",
                "ordering": ("created_at", "id"),
            },
        ),
        migrations.CreateModel(
            name="OtpCode",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("email", models.EmailField(db_index=True, max_length=254)),
                ("code", models.CharField(max_length=6)),
                ("expires_at", models.DateTimeField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "otp_codes",
                "indexes": [models.Index(fields=["email", "code"], name="otp_email_code")],
            },
        ),
        migrations.CreateModel(
            name="ActionLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("actor_id", models.UUIDField(blank=True, null=True)),
                ("actor_name", models.CharField(blank=True, default="", max_length=255)),
                ("action", models.CharField(max_length=64)),
                ("target", models.CharField(blank=True, default="", max_length=255)),
                ("details", models.TextField(blank=True, default="")),
                ("ip_address", models.CharField(blank=True, default="", max_length=64)),
                ("user_agent", models.TextField(blank=True, default="")),
                ("timestamp", models.DateTimeField(auto_now_add=True, db_index=True)),
            ],
            options={
                "db_table": "action_logs",
                "ordering": ("-timestamp", "id"),
            },
        ),
        migrations.CreateModel(
            name="DeliveryJob",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "queue",
                    models.CharField(choices=[("otp", "OTP"), ("broadcast", "Broadcast")], max_length=16),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[("send-otp", "Send OTP"), ("send-broadcast", "Send broadcast")],
                        max_length=32,
                    ),
                ),
                ("payload", models.JSONField(default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=[("queued", "Queued"), ("active", "Active"), ("failed", "Failed")],
                        default="queued",
                        max_length=16,
                    ),
                ),
                ("attempts_made", models.PositiveSmallIntegerField(default=0)),
                ("max_attempts", models.PositiveSmallIntegerField(default=1)),
                ("available_at", models.DateTimeField()),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("last_error", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "delivery_jobs",
                "ordering": ("available_at", "id"),
                "indexes": [
                    models.Index(fields=["queue", "status", "available_at"], name="delivery_due"),
                    models.Index(fields=["queue", "status", "failed_at"], name="delivery_failed"),
                ],
            },
        ),
    ]
