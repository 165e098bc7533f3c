from typing import override

from django.conf import settings
from django.core.mail.backends.smtp import EmailBackend


class BackupSMTPEmailBackend(EmailBackend):
    """SMTP backend pointed at the secondary relay (``BACKUP_EMAIL_*`` settings).

    Registered as the ``backup`` django-post-office backend and only used when
    the primary relay refuses a message.
    """

    @override
    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("host", settings.BACKUP_EMAIL_HOST)
        kwargs.setdefault("port", settings.BACKUP_EMAIL_PORT)
        kwargs.setdefault("username", settings.BACKUP_EMAIL_HOST_USER)
        kwargs.setdefault("password", settings.BACKUP_EMAIL_HOST_PASSWORD)
        kwargs.setdefault("use_tls", settings.BACKUP_EMAIL_USE_TLS)
        super().__init__(**kwargs)
