from django.contrib import admin, messages
from django.utils import timezone

from voting.delivery_queue import retry_failed_jobs
from voting.models import ActionLog, Candidate, DeliveryJob, OfflineVoteLog, Vote, Voter


@admin.action(description="Soft-delete selected voters", permissions=["change"])
def soft_delete_voters(modeladmin, request, queryset) -> None:
    count = queryset.filter(deleted_at__isnull=True).update(deleted_at=timezone.now())
    modeladmin.message_user(request, f"Soft-deleted {count} voter(s).", messages.SUCCESS)


@admin.register(Voter)
class VoterAdmin(admin.ModelAdmin):
    list_display = ("nim", "name", "email", "batch", "role", "access_type", "has_voted", "vote_method", "deleted_at")
    list_filter = ("role", "access_type", "has_voted", "vote_method", "batch")
    search_fields = ("nim", "name", "email")
    readonly_fields = ("has_voted", "vote_method", "voted_at", "checked_in_at", "checked_in_by", "created_at")
    actions = [soft_delete_voters]

    # Checked-in voters are the bound on offline tallies; rows are only ever soft-deleted.
    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    list_display = ("order_number", "name", "deleted_at")
    ordering = ("order_number",)


# Votes are removed only through the grace-windowed API so the results cache is evicted.
@admin.register(Vote)
class VoteAdmin(admin.ModelAdmin):
    list_display = ("id", "candidate", "source", "timestamp")
    list_filter = ("source", "candidate")

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(OfflineVoteLog)
class OfflineVoteLogAdmin(admin.ModelAdmin):
    list_display = ("candidate", "count", "input_by", "created_at")

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(ActionLog)
class ActionLogAdmin(admin.ModelAdmin):
    list_display = ("timestamp", "actor_name", "action", "target", "ip_address")
    list_filter = ("action",)
    search_fields = ("actor_name", "target", "details")


@admin.action(description="Retry selected failed jobs")
def retry_selected_jobs(modeladmin, request, queryset) -> None:
    count = retry_failed_jobs(queryset.values_list("pk", flat=True))
    modeladmin.message_user(request, f"Re-queued {count} job(s).", messages.SUCCESS)


@admin.register(DeliveryJob)
class DeliveryJobAdmin(admin.ModelAdmin):
    list_display = ("id", "queue", "kind", "status", "attempts_made", "max_attempts", "available_at", "failed_at")
    list_filter = ("queue", "kind", "status")
    readonly_fields = ("payload", "last_error", "created_at", "updated_at")
    actions = [retry_selected_jobs]
