from django.apps import AppConfig


class VotingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "voting"
    verbose_name = "Voting"

    def ready(self) -> None:
        from voting.results_cache import results_cache
        from voting.signals import vote_ledger_changed

        vote_ledger_changed.connect(
            results_cache.on_ledger_changed,
            dispatch_uid="voting.results_cache.evict_on_ledger_change",
        )
