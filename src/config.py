"""
Configuration management for connector settings and command-line arguments.
"""

import argparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from src.packages.search_client import parse_connection_string


class Config(BaseSettings):
    log_level: str = Field('INFO', description="Logging level",
                           examples=["CRITICAL", "FATAL", "ERROR", "WARNING", "INFO", "DEBUG"])
    ES_URL: str = Field(
        description="Elasticsearch collection url. Example: http://localhost:9200/my_collection")
    SCROLL_KEEP_ALIVE: str = Field(default="10m", description="Keep-alive of the scroll opened for id export")
    SCROLL_CONTINUATION_KEEP_ALIVE: str = Field(default="1m",
                                                description="Keep-alive sent with each scroll page request")
    BATCH_SIZE: int = Field(default=1000, ge=1, description="Ids per scroll page")
    QUEUE_SIZE: int = Field(default=10, ge=1, description="Capacity of the id batch queue")
    ENQUEUE_TIMEOUT: float = Field(default=1.0, gt=0, description="Seconds per attempt to enqueue a batch")
    REQUEST_TIMEOUT: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")

    @field_validator("ES_URL")
    def validate_es_url(cls, v):
        parse_connection_string(v)
        return v


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Export every document id of an Elasticsearch collection")

    parser.add_argument(
        "--es-url",
        dest="ES_URL",
        help="Collection url, e.g. http://localhost:9200/my_collection (env: ES_URL)",
    )

    parser.add_argument(
        "--batch-size",
        dest="BATCH_SIZE",
        type=int,
        help="Ids per scroll page (env: BATCH_SIZE)",
    )

    parser.add_argument(
        "--queue-size",
        dest="QUEUE_SIZE",
        type=int,
        help="Capacity of the id batch queue (env: QUEUE_SIZE)",
    )

    parser.add_argument(
        "--output",
        help="File to write ids to (default: stdout)",
    )

    # Optional log level
    parser.add_argument(
        "--log-level",
        help="Logging level",
    )

    return parser.parse_args(argv)


def get_config(args: argparse.Namespace) -> Config:
    # Only include CLI values that are actually set
    cli_overrides = {k: v for k, v in vars(args).items() if v is not None and k != "output"}
    return Config(**cli_overrides)
