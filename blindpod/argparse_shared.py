import argparse
import logging
import sys


def get_base_parser(description: str = "Blindpod") -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("-e", "--env-file", help="Path to a custom .env file", default=None)
    return parser


def add_log_level_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-l", "--log-level", help="Set log level (DEBUG, INFO, WARNING, ERROR)", default="INFO")


def add_run_once_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--once", action="store_true", help="Run every worker a single time and exit")


def configure_logging(log_level: str = "INFO") -> None:
    # Log to stdout for Docker
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )
    # httpx and httpcore are super chatty on INFO
    if log_level.upper() == "INFO":
        logging.getLogger("httpx").setLevel("WARNING")
        logging.getLogger("httpcore").setLevel("WARNING")
