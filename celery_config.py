# 📄 File: celery_config.py
#
# 🧭 Purpose (Layman Explanation):
# Configuration file for our background task system (Celery) that runs the scheduled
# subscription chores: expiring overdue subscriptions and refilling plan allowances.
#
# 🧪 Purpose (Technical Summary):
# Celery configuration for the lifecycle sweeps: Redis broker and result backend,
# queue routing, beat schedule driven by application settings and worker limits.
#
# 🔗 Dependencies:
# - celery Python package
# - Redis server (message broker)
# - telehealth_core.shared.config.settings
#
# 🔄 Connected Modules / Calls From:
# - telehealth_core/background_jobs/tasks/subscription_sweeps.py
# - Worker and beat processes (celery -A celery_config worker / beat)

import os
from datetime import timedelta

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging
from kombu import Queue

from telehealth_core.shared.config.settings import get_settings
from telehealth_core.shared.utils.logging import setup_logging

settings = get_settings()

EXPIRATION_SWEEP_TASK = "telehealth_core.background_jobs.tasks.subscription_sweeps.sweep_subscription_expirations"
USAGE_RESET_TASK = "telehealth_core.background_jobs.tasks.subscription_sweeps.reset_privilege_usage"

# =============================================================================
# CELERY CONFIGURATION CLASS
# =============================================================================


class CeleryConfig:
    """
    Celery configuration for the telehealth subscription core.

    Defines broker settings, routing and the sweep schedule.
    """

    # =========================================================================
    # BROKER AND BACKEND SETTINGS
    # =========================================================================

    broker_url = settings.CELERY_BROKER_URL
    result_backend = settings.CELERY_RESULT_BACKEND

    broker_connection_retry_on_startup = True
    broker_connection_retry = True
    broker_connection_max_retries = 10
    broker_heartbeat = 30
    broker_pool_limit = 10

    result_expires = timedelta(hours=24)
    result_persistent = True

    # =========================================================================
    # TASK SETTINGS
    # =========================================================================

    task_serializer = "json"
    result_serializer = "json"
    accept_content = ["json"]
    timezone = "UTC"
    enable_utc = True

    task_default_queue = "default"
    task_default_exchange = "default"
    task_default_exchange_type = "direct"
    task_default_routing_key = "default"

    # Sweeps walk the whole subscription table
    task_time_limit = 900
    task_soft_time_limit = 840
    task_acks_late = True
    worker_prefetch_multiplier = 1

    task_reject_on_worker_lost = True
    task_ignore_result = False

    # =========================================================================
    # QUEUE DEFINITIONS
    # =========================================================================

    task_routes = {
        EXPIRATION_SWEEP_TASK: {"queue": "lifecycle"},
        USAGE_RESET_TASK: {"queue": "lifecycle"},
    }

    task_queues = (
        Queue("lifecycle", routing_key="lifecycle", priority=7),
        Queue("default", routing_key="default", priority=3),
    )

    # =========================================================================
    # WORKER SETTINGS
    # =========================================================================

    worker_max_tasks_per_child = 1000
    worker_concurrency = int(os.getenv("CELERY_WORKER_CONCURRENCY", 2))
    worker_pool = "prefork"
    worker_hijack_root_logger = False

    worker_log_format = "[%(asctime)s: %(levelname)s/%(processName)s] %(message)s"
    worker_task_log_format = "[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s"

    # =========================================================================
    # BEAT SCHEDULER SETTINGS
    # =========================================================================

    beat_schedule = {
        "sweep-subscription-expirations": {
            "task": EXPIRATION_SWEEP_TASK,
            "schedule": timedelta(minutes=settings.EXPIRATION_SWEEP_INTERVAL_MINUTES),
            "options": {"queue": "lifecycle"},
        },
        "reset-privilege-usage": {
            "task": USAGE_RESET_TASK,
            "schedule": timedelta(minutes=settings.USAGE_RESET_INTERVAL_MINUTES),
            "options": {"queue": "lifecycle"},
        },
    }

    beat_scheduler = "celery.beat:PersistentScheduler"
    beat_schedule_filename = "celerybeat-schedule"

    # =========================================================================
    # MONITORING
    # =========================================================================

    task_send_sent_event = True
    task_track_started = True
    worker_send_task_events = True
    event_serializer = "json"


# =============================================================================
# ENVIRONMENT-SPECIFIC CONFIGURATIONS
# =============================================================================

class DevelopmentCeleryConfig(CeleryConfig):
    """Development configuration: runs the expiration sweep every minute."""

    worker_log_level = "DEBUG"
    beat_schedule = {
        **CeleryConfig.beat_schedule,
        "sweep-subscription-expirations": {
            **CeleryConfig.beat_schedule["sweep-subscription-expirations"],
            "schedule": timedelta(minutes=1),
        },
    }


class ProductionCeleryConfig(CeleryConfig):
    """Production-specific Celery configuration."""

    worker_log_level = "INFO"
    worker_max_tasks_per_child = 5000
    worker_send_task_events = True


# =============================================================================
# CONFIG FACTORY
# =============================================================================

def get_celery_config() -> CeleryConfig:
    """
    Pick the Celery configuration for the current environment.

    Returns:
        CeleryConfig: Configuration instance for current environment
    """
    config_map = {
        "development": DevelopmentCeleryConfig,
        "staging": ProductionCeleryConfig,
        "production": ProductionCeleryConfig,
    }

    config_class = config_map.get(settings.ENVIRONMENT.lower(), DevelopmentCeleryConfig)
    return config_class()


# =============================================================================
# CELERY APPLICATION INSTANCE
# =============================================================================

app = Celery("telehealth_core")
app.config_from_object(get_celery_config())
app.autodiscover_tasks(["telehealth_core.background_jobs.tasks"], related_name="subscription_sweeps")


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Replace Celery's root logger setup with the structured JSON logging."""
    setup_logging()


if __name__ == "__main__":
    app.start()
