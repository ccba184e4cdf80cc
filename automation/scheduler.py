"""
Recommendation Engine Scheduler.

Runs periodic maintenance of an in-process orchestrator on APScheduler:
- interaction_cleanup: daily purge of expired interactions (03:00)
- model_training: optional weekly latent model retraining

Usage:
    >>> scheduler = start_scheduler(orchestrator)
    >>> ...
    >>> scheduler.shutdown()
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
import pytz

from rentalrec.cf.latent_factor import MODEL_TYPE
from rentalrec.config import SchedulerConfig
from rentalrec.logging_utils import (
    format_metrics,
    generate_run_id,
    setup_service_logger,
    setup_training_logger,
)
from service.recommender.orchestrator import RecommendationOrchestrator

from .cleanup import run_interaction_cleanup

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

def _log_subdir(config: SchedulerConfig, name: str) -> Optional[str]:
    if config.log_dir is None:
        return None
    return str(Path(config.log_dir) / name)


def build_scheduler_config(config: SchedulerConfig) -> Dict[str, Dict[str, Any]]:
    """Job table derived from the scheduler section of the engine config."""
    return {
        "interaction_cleanup": {
            "enabled": True,
            "description": "Daily purge of expired interactions",
            "schedule": {"hour": config.cleanup_hour, "minute": config.cleanup_minute},
        },
        "model_training": {
            "enabled": config.training_enabled,
            "description": "Weekly latent factor model training",
            "schedule": {
                "day_of_week": config.training_day_of_week,
                "hour": config.training_hour,
                "minute": 0,
            },
        },
    }


# =============================================================================
# Task Execution
# =============================================================================

def _cleanup_task(orchestrator: RecommendationOrchestrator) -> Dict[str, Any]:
    return run_interaction_cleanup(orchestrator)


def _training_task(orchestrator: RecommendationOrchestrator) -> Dict[str, Any]:
    run_id = generate_run_id(MODEL_TYPE)
    run_logger = setup_training_logger(
        MODEL_TYPE,
        run_id,
        log_dir=_log_subdir(orchestrator.config.scheduler, "training"),
        console=False
    )

    try:
        run_logger.info(f"Training started | run_id={run_id}")
        model = orchestrator.train_latent_model()
        final_rmse = model.history.losses[-1] if model.history.losses else None
        run_logger.info(
            f"Training complete | version={model.version} | "
            + format_metrics({"rmse": final_rmse})
        )
        return {"version": model.version, "trained_at": model.trained_at.isoformat()}
    except Exception as e:
        run_logger.error(f"Training failed | run_id={run_id} | {e}")
        raise
    finally:
        for handler in run_logger.handlers:
            handler.close()
        run_logger.handlers = []


TASKS: Dict[str, Callable[[RecommendationOrchestrator], Dict[str, Any]]] = {
    "interaction_cleanup": _cleanup_task,
    "model_training": _training_task,
}


def run_task(task_name: str, orchestrator: RecommendationOrchestrator) -> Dict[str, Any]:
    """
    Execute one scheduled task.

    Returns:
        Task result dict with ``status`` of ``success`` or ``error``
    """
    logger.info(f"Starting task: {task_name}")
    result: Dict[str, Any] = {
        "task": task_name,
        "status": "running",
        "timestamp": datetime.now().isoformat(),
    }

    try:
        result["output"] = TASKS[task_name](orchestrator)
        result["status"] = "success"
        logger.info(f"Task completed: {task_name}")
    except Exception as e:
        result["status"] = "error"
        result["error"] = str(e)
        logger.exception(f"Task failed: {task_name}")

    return result


def create_task_wrapper(task_name: str, orchestrator: RecommendationOrchestrator) -> Callable[[], None]:
    def wrapper() -> None:
        result = run_task(task_name, orchestrator)
        if result["status"] != "success":
            logger.warning(f"Task {task_name} failed: {result}")

    return wrapper


# =============================================================================
# Scheduler Setup
# =============================================================================

def create_scheduler(
    orchestrator: RecommendationOrchestrator,
    config: Optional[SchedulerConfig] = None
) -> BackgroundScheduler:
    """Create the scheduler and register enabled jobs without starting it."""
    config = config or orchestrator.config.scheduler
    timezone = pytz.timezone(config.timezone)
    scheduler = BackgroundScheduler(timezone=timezone)

    for task_name, job in build_scheduler_config(config).items():
        if not job.get("enabled", True):
            logger.info(f"Skipping disabled task: {task_name}")
            continue

        scheduler.add_job(
            create_task_wrapper(task_name, orchestrator),
            trigger=CronTrigger(**job["schedule"], timezone=timezone),
            id=task_name,
            name=job["description"],
            replace_existing=True,
        )
        logger.info(f"Registered job: {task_name} ({job['schedule']})")

    return scheduler


def start_scheduler(
    orchestrator: RecommendationOrchestrator,
    config: Optional[SchedulerConfig] = None
) -> BackgroundScheduler:
    """Create, start and return the background scheduler."""
    config = config or orchestrator.config.scheduler
    service_logger = setup_service_logger("scheduler", log_dir=_log_subdir(config, "service"))

    scheduler = create_scheduler(orchestrator, config)
    scheduler.start()

    for job in scheduler.get_jobs():
        service_logger.info(f"  [{job.id}] next run: {job.next_run_time}")
    service_logger.info("Scheduler started")
    return scheduler
