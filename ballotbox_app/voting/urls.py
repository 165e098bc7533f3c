from django.urls import path

from voting import views_auth, views_broadcast, views_votes

app_name = "voting"

urlpatterns = [
    path("candidates", views_votes.candidates, name="candidates"),
    path("votes", views_votes.cast, name="vote-cast"),
    path("votes/status", views_votes.status, name="vote-status"),
    path("votes/stats", views_votes.stats, name="vote-stats"),
    path("votes/results", views_votes.results, name="vote-results"),
    path("votes/activity", views_votes.activity, name="vote-activity"),
    path("votes/checkin", views_votes.checkin, name="vote-checkin"),
    path("votes/uncheckin", views_votes.uncheckin, name="vote-uncheckin"),
    path("votes/offline", views_votes.offline_tally, name="vote-offline"),
    path("votes/<uuid:vote_id>", views_votes.delete, name="vote-delete"),
    path("auth/otp-request", views_auth.otp_request, name="otp-request"),
    path("auth/otp-verify", views_auth.otp_verify, name="otp-verify"),
    path("auth/otp-manual", views_auth.otp_manual, name="otp-manual"),
    path("auth/reset-otp-limit", views_auth.reset_otp_limit, name="reset-otp-limit"),
    path("broadcast/preview", views_broadcast.preview, name="broadcast-preview"),
    path("broadcast/send", views_broadcast.send, name="broadcast-send"),
    path("broadcast/test", views_broadcast.send_test, name="broadcast-test"),
]
