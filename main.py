import argparse
import logging
import signal
import time

from core.app_context import AppContext
from core.config_loader import load_config
from database.init_db import init_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Global flag for graceful shutdown
running = True


def signal_handler(sig, frame):
    global running
    logger.info("Shutdown signal received")
    running = False


def main():
    parser = argparse.ArgumentParser(description="CV extraction pipeline worker")
    parser.add_argument('--config', type=str, default='config.yaml', help='Path to config.yaml')
    parser.add_argument('--once', action='store_true', help='Run a single worker tick and exit')
    parser.add_argument('--skip-init-db', action='store_true', help='Do not create missing tables on startup')
    args = parser.parse_args()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    config = load_config(args.config)
    logging.getLogger().setLevel(config.logging.level.upper())

    ctx = AppContext.build(config)

    # Initialize DB (with retry logic)
    if not args.skip_init_db:
        init_db(ctx.session_factory.kw['bind'])

    if not ctx.blob_store.health_check():
        logger.warning(f"Blob store ({config.storage.backend}) failed its health check; uploads will fail")

    logger.info(
        f"CV pipeline starting: provider={config.llm.provider} model={config.llm.resolved_model} "
        f"storage={config.storage.backend} async_queue={ctx.dispatcher.async_mode}"
    )

    if args.once:
        counts = ctx.worker.run_once()
        logger.info(f"Single tick finished: {counts}")
        return

    ctx.worker.start()
    try:
        while running:
            time.sleep(1)
    finally:
        ctx.worker.stop(timeout=30)
        logger.info(f"Worker stats at shutdown: {ctx.worker.stats()}")


if __name__ == "__main__":
    main()
