from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from paperleague.core.config import settings
from paperleague.core.logging import setup_logging

app = Celery("paperleague", include=["paperleague.tasks.pipeline"])
app.conf.update(
    broker_url=settings.CELERY_BROKER_URL,
    result_backend=settings.CELERY_RESULT_BACKEND,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=False,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    setup_logging()


app.conf.beat_schedule = {
    # Values the previous Seoul calendar day once both KRX and the US session have closed
    "run-daily-pipeline": {
        "task": "paperleague.tasks.pipeline.run_daily_pipeline",
        "schedule": crontab(hour=settings.PIPELINE_HOUR, minute=settings.PIPELINE_MINUTE),
    },
}
