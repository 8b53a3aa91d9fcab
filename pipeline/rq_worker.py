#!/usr/bin/env python3
"""
RQ Worker for CV extraction jobs.

Processes pipeline.jobs.process_extraction jobs enqueued by the dispatcher.

Usage:
    python -m pipeline.rq_worker
    python -m pipeline.rq_worker --burst
    python -m pipeline.rq_worker --queues cv_extraction --verbose
"""
import argparse
import logging
import os
import sys

from redis import Redis
from rq import Worker

from pipeline.dispatcher import DEFAULT_QUEUE_NAME

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def start_worker(burst: bool = False, queues: list = None, redis_url: str = None):
    """Start the RQ worker."""
    redis_url = redis_url or os.environ.get('REDIS_URL', 'redis://localhost:6379/0')

    if queues is None:
        queues = [DEFAULT_QUEUE_NAME]

    logger.info("Starting RQ Worker")
    logger.info(f"Redis URL: {redis_url}")
    logger.info(f"Queues: {', '.join(queues)}")
    logger.info(f"Burst mode: {burst}")

    try:
        redis_conn = Redis.from_url(redis_url)
        redis_conn.ping()
        logger.info("Connected to Redis")

        worker = Worker(queues, connection=redis_conn)

        if burst:
            logger.info("Running in burst mode...")
            worker.work(burst=True)
        else:
            logger.info("Worker started. Press Ctrl+C to stop.")
            worker.work()

    except KeyboardInterrupt:
        logger.info("Worker stopped")
    except Exception as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description='CV extraction worker')
    parser.add_argument('--burst', action='store_true', help='Process all and exit')
    parser.add_argument('--queues', nargs='+', default=[DEFAULT_QUEUE_NAME])
    parser.add_argument('--redis-url', default=None)
    parser.add_argument('--verbose', action='store_true')

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    start_worker(burst=args.burst, queues=args.queues, redis_url=args.redis_url)


if __name__ == '__main__':
    main()
