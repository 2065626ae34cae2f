from celery import Celery

# Create Celery app
celery = Celery("event_notifier")

# Load configuration from event_notifier.config.celeryconfig module
celery.config_from_object("event_notifier.config.celeryconfig")
