"""
Logging Utilities for the Recommendation Engine.

Structured logger setup for:
- Latent factor training runs
- The recommendation service (orchestrator, cache, scheduler)

Example:
    >>> from rentalrec.logging_utils import setup_training_logger, format_params
    >>> logger = setup_training_logger('sgd_mf', generate_run_id('sgd_mf'))
    >>> logger.info(f"Training started | {format_params({'factors': 10, 'lr': 0.01})}")
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

# ============================================================================
# Constants
# ============================================================================

TRAINING_LOG_DIR = "logs/training"
SERVICE_LOG_DIR = "logs/service"

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)


# ============================================================================
# Logger Setup
# ============================================================================

def setup_training_logger(
    model_type: str,
    run_id: str,
    log_dir: Optional[str] = TRAINING_LOG_DIR,
    console: bool = True
) -> logging.Logger:
    """
    Setup logger for a training run.

    Args:
        model_type: Model family, e.g. 'sgd_mf'
        run_id: Unique run identifier
        log_dir: Directory for log files (None = no file handler)
        console: Whether to also log to console

    Returns:
        Configured logger
    """
    logger = logging.getLogger(f'rentalrec.training.{model_type}.{run_id}')
    logger.setLevel(logging.DEBUG)
    logger.handlers = []

    if log_dir is not None:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(Path(log_dir) / f'{model_type}.log', encoding='utf-8')
        fh.setLevel(logging.INFO)
        fh.setFormatter(_formatter())
        logger.addHandler(fh)

    if console:
        ch = logging.StreamHandler()
        ch.setLevel(logging.INFO)
        ch.setFormatter(_formatter())
        logger.addHandler(ch)

    return logger


def setup_service_logger(
    name: str = 'recommender',
    log_dir: Optional[str] = SERVICE_LOG_DIR,
    console: bool = True
) -> logging.Logger:
    """
    Setup logger for the recommendation service.

    Errors are additionally written to ``error.log`` when a log directory
    is given.
    """
    logger = logging.getLogger(f'service.{name}')
    logger.setLevel(logging.DEBUG)
    logger.handlers = []

    if log_dir is not None:
        Path(log_dir).mkdir(parents=True, exist_ok=True)

        fh = logging.FileHandler(Path(log_dir) / f'{name}.log', encoding='utf-8')
        fh.setLevel(logging.INFO)
        fh.setFormatter(_formatter())
        logger.addHandler(fh)

        eh = logging.FileHandler(Path(log_dir) / 'error.log', encoding='utf-8')
        eh.setLevel(logging.ERROR)
        eh.setFormatter(_formatter())
        logger.addHandler(eh)

    if console:
        ch = logging.StreamHandler()
        ch.setLevel(logging.INFO)
        ch.setFormatter(_formatter())
        logger.addHandler(ch)

    return logger


# ============================================================================
# Format Helpers
# ============================================================================

def format_params(params: Dict[str, Any]) -> str:
    """Format parameters for logging."""
    items = []
    for k, v in params.items():
        if isinstance(v, float):
            items.append(f"{k}={v:.4g}")
        else:
            items.append(f"{k}={v}")
    return ", ".join(items)


def format_metrics(metrics: Dict[str, float]) -> str:
    """Format metrics for logging."""
    items = []
    for k, v in metrics.items():
        if v is not None:
            items.append(f"{k}={v:.4f}")
    return ", ".join(items)


def generate_run_id(model_type: str) -> str:
    """Generate a run id like 'sgd_mf_20251125_103000'."""
    return f"{model_type}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
