"""
TrustCore - Main Entry Point
============================

Starts the trust-and-safety HTTP API with graceful shutdown. Several
instances may run against the same database file; writes are serialized
by SQLite transactions.

Usage:
    python main.py

Environment Variables:
    See .env.example. Nothing is required; without OPENAI_API_KEY every
    semantic check fails closed.
"""

import os
import sys
import signal
import asyncio
from typing import NoReturn

# Load environment variables BEFORE importing local modules that read
# from the environment at import time (config.py)
from dotenv import load_dotenv
load_dotenv()

from trustcore import __version__
from trustcore.core.config import (
    API_HOST,
    API_PORT,
    DB_PATH,
    ConfigValidationError,
    validate_and_log_config,
)
from trustcore.core.constants import REPUTATION_RECOMPUTE_INTERVAL
from trustcore.core.logger import logger
from trustcore.service import TrustCore
from trustcore.services.api import TrustCoreAPI


# =============================================================================
# Background Jobs
# =============================================================================

async def reputation_loop(core: TrustCore) -> None:
    """Recompute every active actor's reputation on a fixed interval."""
    while True:
        try:
            await asyncio.sleep(REPUTATION_RECOMPUTE_INTERVAL)
            await core.reputation.recompute_all()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error_tree("Reputation Batch Failed", e)


# =============================================================================
# Service Lifecycle
# =============================================================================

async def run() -> None:
    core = TrustCore()
    api = TrustCoreAPI(core)
    shutdown = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT, signal.SIGHUP):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except (NotImplementedError, ValueError, OSError) as e:
            logger.warning(f"Could not register {sig.name} handler", [
                ("Error", str(e)),
            ])

    await api.start()
    recompute_task = asyncio.create_task(reputation_loop(core))

    logger.startup_tree("TrustCore", API_HOST, API_PORT, [
        ("Version", __version__),
        ("Database", DB_PATH),
        ("PID", os.getpid()),
    ])

    try:
        await shutdown.wait()
        logger.info("Signal Received", [
            ("Action", "Initiating graceful shutdown"),
        ])
    finally:
        recompute_task.cancel()
        try:
            await recompute_task
        except asyncio.CancelledError:
            pass
        await api.stop()
        await core.close()


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> NoReturn:
    try:
        validate_and_log_config()
    except ConfigValidationError as e:
        logger.error("Configuration Validation Failed", [
            ("Error", str(e)),
            ("Action", "Check your .env file"),
        ])
        sys.exit(1)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("🛑 Shutdown Requested", [
            ("By", "User (Ctrl+C)"),
        ])
    except Exception as e:
        logger.error_tree("💥 Fatal Error", e)
        sys.exit(1)
    finally:
        logger.info("🛑 TrustCore Shutdown Complete")

    sys.exit(0)


if __name__ == "__main__":
    main()
