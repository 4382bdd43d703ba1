"""
Celery Configuration for SlotSwapper with Beat Scheduling
"""

import os
from dotenv import load_dotenv
from celery import Celery
from celery.schedules import crontab

load_dotenv()

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")

# Create Celery app
celery_app = Celery(
    "slotswapper",
    broker=CELERY_BROKER_URL,  # Redis as message broker
    backend=CELERY_BROKER_URL,  # Redis as result backend
    include=["app.celery_tasks.exchanges"]
)

# Basic configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

# Beat schedule configuration
celery_app.conf.beat_schedule = {
    'expire-stale-exchanges': {
        'task': 'app.celery_tasks.exchanges.expire_stale_exchanges',
        'schedule': crontab(minute='*/15'),
    },
}

if __name__ == "__main__":
    celery_app.start()
