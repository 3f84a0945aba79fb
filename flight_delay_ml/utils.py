"""
Utility functions for the flight delay classification pipeline.
"""

import json
import logging
import os
import random
import time
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

LOGGER_NAME = 'flight_delay_ml'

logger = logging.getLogger(__name__)


def set_random_seeds(seed: int = 42, include_tensorflow: bool = False):
    """
    Set random seeds for reproducibility across libraries.

    Stages still receive their own explicit seeds; this only pins the
    process-wide generators that third-party code may fall back on.

    Args:
        seed: Random seed value
        include_tensorflow: Also seed TensorFlow (imports it)
    """
    random.seed(seed)
    np.random.seed(seed)
    os.environ['PYTHONHASHSEED'] = str(seed)

    if include_tensorflow:
        import tensorflow as tf
        tf.keras.utils.set_random_seed(seed)

    logger.info(f"Random seeds set to {seed}")


def setup_logging(log_dir: Optional[str] = None, log_level: str = 'INFO') -> logging.Logger:
    """
    Setup logging configuration.

    Args:
        log_dir: Directory to save log files (console only when None)
        log_level: Logging level

    Returns:
        Configured package logger
    """
    level = getattr(logging, log_level.upper())

    pkg_logger = logging.getLogger(LOGGER_NAME)
    pkg_logger.setLevel(level)
    pkg_logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f'pipeline_{int(time.time())}.log')
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        pkg_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    pkg_logger.addHandler(console_handler)

    return pkg_logger


def format_time(seconds: float) -> str:
    """
    Format seconds into human-readable time string.

    Args:
        seconds: Time in seconds

    Returns:
        Formatted time string
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    seconds = int(seconds % 60)

    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    else:
        return f"{minutes:02d}:{seconds:02d}"


class Timer:
    """Simple timer context manager."""

    def __init__(self, name: str = "Operation", log: Optional[logging.Logger] = None):
        self.name = name
        self.log = log or logger
        self.start_time = None
        self.elapsed = None

    def __enter__(self):
        self.start_time = time.time()
        self.log.info(f"Starting {self.name}...")
        return self

    def __exit__(self, *args):
        self.elapsed = time.time() - self.start_time
        self.log.info(f"{self.name} completed in {format_time(self.elapsed)}")


def _to_builtin(value: Any):
    """json.dump fallback for numpy scalars and arrays."""
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    return str(value)


def save_json(data: Dict[str, Any], save_path: str):
    """Save a results dictionary as indented JSON."""
    with open(save_path, 'w') as f:
        json.dump(data, f, indent=2, default=_to_builtin)
    logger.info(f"Results saved to {save_path}")


def save_dataframe(df: pd.DataFrame, save_path: str, index: bool = False):
    """Save a table to CSV."""
    df.to_csv(save_path, index=index)
    logger.info(f"Table saved to {save_path} ({len(df)} rows)")
