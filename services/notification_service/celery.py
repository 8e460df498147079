from celery import Celery
from celery.schedules import crontab

from services.notification_service import config


SWEEP_QUEUE = "expired-loans"

app = Celery("notification_service", broker=config.CELERY_BROKER_URL)
app.conf.timezone = config.SWEEP_TIMEZONE
app.conf.beat_schedule = {
    # Every 10 minutes between 08:00 and 10:59, Monday to Friday.
    "sweep-expired-loans": {
        "task": "services.notification_service.tasks.sweep_expired_loans",
        "schedule": crontab(minute="*/10", hour="8-10", day_of_week="mon-fri"),
        "options": {"queue": SWEEP_QUEUE},
    },
}
app.conf.task_routes = {
    "services.notification_service.tasks.sweep_expired_loans": {"queue": SWEEP_QUEUE},
}
# The sweep cursor lives in worker memory: every run must land in the same
# process, so the worker runs tasks inline with no forked children.
app.conf.worker_pool = "solo"
app.conf.worker_concurrency = 1
app.conf.task_default_queue = SWEEP_QUEUE

app.autodiscover_tasks(["services.notification_service"])
