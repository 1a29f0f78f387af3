"""Command-line interface for the LuckyGuess R runner."""

import argparse
import json
import os
import sys
from pathlib import Path

from . import __version__
from .config import TOKEN_ENV, JobConfig, RunnerConfig
from .config_table import read_config_table
from .events import StorageEventSink
from .exceptions import ConfigurationError, LgrError, is_user_error
from .logging import get_logger, setup_logging
from .runner import TransformationRunner
from .rwrapper import RWrapper
from .storage import StorageApiClient

RUNNER_CONFIG_ENV = "LGR_RUNNER_CONFIG"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INPUT_ERROR = 2


def load_runner_config() -> RunnerConfig:
    """Runner config from the YAML file named by LGR_RUNNER_CONFIG, else from env."""
    path = os.getenv(RUNNER_CONFIG_ENV)
    if path:
        return RunnerConfig.from_yaml(path)
    return RunnerConfig.from_env()


def run_command(args: argparse.Namespace) -> int:
    """Run the R script described by <data>/config.yml.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0=success, 1=job failure, 2=input error)
    """
    try:
        runner_config = load_runner_config()
    except (ConfigurationError, ValueError) as e:
        print(f"ERROR: Invalid runner configuration: {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR

    logger = setup_logging(level=runner_config.log_level, redact_secrets=True)

    try:
        job_config = JobConfig.from_data_dir(args.data)
    except ConfigurationError as e:
        logger.error(
            f"There was an error in input: {e.message}",
            extra={"event_type": "config_error"},
        )
        return EXIT_INPUT_ERROR

    data_dir = Path(args.data).resolve()
    logger.debug(f"Using directory: {data_dir}")
    logger.debug(f"Source table set to: {job_config.source_table}")
    logger.debug(f"Output file tags are set to: {job_config.file_tags}")
    logger.debug(f"Script parameters are set to: {job_config.script_parameters}")
    logger.debug(f"Run ID set to: {job_config.run_id}")

    storage = StorageApiClient(
        job_config.token, runner_config.storage_api_url, run_id=job_config.run_id
    )
    runner = TransformationRunner(
        runner_config,
        job_config,
        events=StorageEventSink(storage, runner_config.component),
    )

    try:
        runner.run_to_directory(data_dir)
    except Exception as e:
        # Already logged and reported by the runner
        return EXIT_INPUT_ERROR if is_user_error(e) else EXIT_FAILED
    return EXIT_OK


def params_command(args: argparse.Namespace) -> int:
    """Print the parameters declared by an R script as JSON."""
    runner_config = load_runner_config()
    setup_logging(level=runner_config.log_level)
    script = Path(args.script)
    if not script.is_file():
        get_logger().error(f"Script not found: {script}")
        return EXIT_INPUT_ERROR

    try:
        parameters = RWrapper(runner_config).get_parameters(script)
    except LgrError as e:
        get_logger().error(e.message, extra={"event_type": "params_error"})
        return EXIT_FAILED

    print(json.dumps(parameters, indent=2))
    return EXIT_OK


def list_command(args: argparse.Namespace) -> int:
    """Print every available R script module with its parameters as JSON."""
    runner_config = load_runner_config()
    setup_logging(level=runner_config.log_level)

    try:
        scripts = RWrapper(runner_config).list_scripts(args.script_dir)
    except ConfigurationError as e:
        get_logger().error(e.message, extra={"event_type": "config_error"})
        return EXIT_INPUT_ERROR
    except LgrError as e:
        get_logger().error(e.message, extra={"event_type": "list_error"})
        return EXIT_FAILED

    print(json.dumps(scripts, indent=2))
    return EXIT_OK


def config_table_command(args: argparse.Namespace) -> int:
    """Print a component configuration table as nested JSON."""
    runner_config = load_runner_config()
    setup_logging(level=runner_config.log_level, redact_secrets=True)
    token = os.getenv(TOKEN_ENV)
    if not token:
        get_logger().error(f"Storage API token must be provided in environment variable {TOKEN_ENV}.")
        return EXIT_INPUT_ERROR

    storage = StorageApiClient(token, runner_config.storage_api_url)
    try:
        config = read_config_table(
            storage, args.component or runner_config.component, args.table
        )
    except ConfigurationError as e:
        get_logger().error(e.message, extra={"event_type": "config_error"})
        return EXIT_INPUT_ERROR
    except LgrError as e:
        get_logger().error(e.message, extra={"event_type": "config_table_error"})
        return EXIT_FAILED

    print(json.dumps(config, indent=2))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lgr",
        description="LuckyGuess R runner - runs R scripts against Redshift",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the job described by /data/config.yml
  lgr run --data /data

  # Show parameters declared by a script
  lgr params /opt/lgr/RScripts/forecast.R
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show version number and exit",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    run_parser = subparsers.add_parser(
        "run",
        help="Run an R script provided by configuration in the data directory",
        description="Run an R script provided by configuration in configuration directory.",
    )
    run_parser.add_argument(
        "-d",
        "--data",
        required=True,
        help="Location of the data directory with configuration",
    )

    params_parser = subparsers.add_parser(
        "params",
        help="Show parameters declared by an R script",
    )
    params_parser.add_argument("script", help="Path to the R script")

    list_parser = subparsers.add_parser(
        "list",
        help="List available R script modules and their parameters",
    )
    list_parser.add_argument(
        "--script-dir",
        help="Directory with R script modules (default: LGR_SCRIPT_DIR)",
    )

    table_parser = subparsers.add_parser(
        "config-table",
        help="Show a component configuration table (name/value) as nested JSON",
    )
    table_parser.add_argument("table", help="Table name inside the sys.c-<component> bucket")
    table_parser.add_argument(
        "--component",
        help="Component ID of the bucket (default: runner component)",
    )

    return parser


def main() -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if args.command == "run":
        return run_command(args)
    elif args.command == "params":
        return params_command(args)
    elif args.command == "list":
        return list_command(args)
    elif args.command == "config-table":
        return config_table_command(args)

    parser.print_help()
    return EXIT_INPUT_ERROR


if __name__ == "__main__":
    sys.exit(main())
