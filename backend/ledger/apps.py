from django.apps import AppConfig


class LedgerConfig(AppConfig):
    default_auto_field = 'django.db.models.AutoField'
    name = 'backend.ledger'
    label = 'ledger'

    def ready(self):
        # ensure signal handlers in backend.ledger.signals are imported and registered
        import backend.ledger.signals  # noqa: F401
