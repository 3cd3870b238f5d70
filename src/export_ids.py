"""
Export every document id of an Elasticsearch collection, one id per line.
"""

import logging
import queue
import sys
from pathlib import Path
from typing import TextIO

from dotenv import load_dotenv

from src.config import Config, get_config, parse_args
from src.packages.search_client import END_OF_STREAM, ESClient, HttpJsonTransport, ScrollExporter

# Configure logging
logger = logging.getLogger(__name__)

# Load .env.local from project root (must run from project root)
env_local_path = Path('.env.local')
if env_local_path.exists():
    load_dotenv(env_local_path)
    logger.info("Loaded .env.local for local development")
else:
    logger.info("No .env.local file found")

DRAIN_POLL_SECONDS = 1.0


def drain_ids(ids_queue: "queue.Queue", exporter: ScrollExporter, out: TextIO) -> int:
    """Write batches to out until END_OF_STREAM; returns the number of ids written."""
    written = 0
    while True:
        try:
            batch = ids_queue.get(timeout=DRAIN_POLL_SECONDS)
        except queue.Empty:
            if exporter.done.is_set() and exporter.cancelled:
                break
            continue

        if batch is END_OF_STREAM:
            break
        for doc_id in sorted(batch):
            out.write(doc_id + "\n")
        written += len(batch)
        logger.debug(f"Wrote batch of {len(batch)} ids, {written} total")
    return written


def export_ids(config: Config, out: TextIO, transport=None) -> int:
    """Run a full export; returns the process exit code."""
    transport = transport or HttpJsonTransport(timeout=config.REQUEST_TIMEOUT)
    client = ESClient(
        config.ES_URL,
        transport=transport,
        scroll_keep_alive=config.SCROLL_KEEP_ALIVE,
        continuation_keep_alive=config.SCROLL_CONTINUATION_KEEP_ALIVE,
        enqueue_timeout=config.ENQUEUE_TIMEOUT,
    )
    ids_queue: "queue.Queue" = queue.Queue(maxsize=config.QUEUE_SIZE)
    exporter = client.start_loading_ids(ids_queue, config.BATCH_SIZE)
    try:
        written = drain_ids(ids_queue, exporter, out)
    except BaseException:
        # nothing drains the queue any more
        exporter.stop()
        raise
    finally:
        exporter.wait()
        client.close()

    if exporter.error is not None:
        logger.error(f"Export failed after {written} ids: {exporter.error}")
        return 1
    logger.info(f"Exported {written} ids")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    # Load configuration from environment variables and command-line arguments
    config = get_config(args)

    # Configure logging
    logging.basicConfig(level=config.log_level)

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            return export_ids(config, f)
    return export_ids(config, sys.stdout)


if __name__ == "__main__":
    sys.exit(main())
