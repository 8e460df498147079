import os

# Must be set before the mailer configures Django.
os.environ["EMAIL_BACKEND"] = "django.core.mail.backends.locmem.EmailBackend"
os.environ["RUN_EVENT_CONSUMER"] = "false"

import pytest  # noqa: E402
from django.core import mail  # noqa: E402


@pytest.fixture(autouse=True)
def outbox():
    mail.outbox = []
    yield mail.outbox
    mail.outbox = []
