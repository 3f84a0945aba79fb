#!/usr/bin/env python3
"""
Command-line entry point for the flight delay classification pipeline.
"""

import argparse
import logging
import sys
import time

import yaml

from .config import create_default_config, load_config
from .errors import StageError
from .models import MODEL_REGISTRY
from .pipeline import FlightDelayPipeline
from .utils import format_time, set_random_seeds, setup_logging

logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Flight Delay Classification')

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to configuration YAML file'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Top-level random seed'
    )

    parser.add_argument(
        '--model',
        type=str,
        default=None,
        choices=sorted(MODEL_REGISTRY),
        help='Model carried into threshold sweep and explanation'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default=None,
        help='Directory for tables, figures, logs and the run summary'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug mode'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level'
    )

    return parser.parse_args(argv)


def main(argv=None):
    """Main function."""
    args = parse_arguments(argv)

    # Console only until the output directory is known
    setup_logging(None, args.log_level)

    try:
        if args.config:
            config = load_config(args.config)
        else:
            config = create_default_config()
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"Could not load configuration {args.config}: {e}")
        return 1

    # Override configuration with command line arguments
    if args.seed is not None:
        config.seed = args.seed

    if args.model:
        config.model.selected = args.model

    if args.output_dir:
        config.paths.output_dir = args.output_dir

    if args.debug and not config.debug.debug:
        config.debug.debug = True
        config.apply_debug_settings()

    config.paths.create_output_dirs()
    setup_logging(config.paths.logs_dir, args.log_level)

    try:
        config.validate()
    except ValueError as e:
        logger.error(str(e))
        return 1

    set_random_seeds(config.seed)

    start_time = time.time()
    try:
        results = FlightDelayPipeline(config).run()
    except StageError as e:
        logger.error(f"Pipeline failed at stage '{e.stage}': {e.cause}")
        return 1

    logger.info(f"Chosen threshold: {results['threshold']['chosen']:.2f} "
                f"(model: {results['threshold']['model']})")
    logger.info(f"Total time: {format_time(time.time() - start_time)}")
    logger.info(f"Results saved to: {config.paths.output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
