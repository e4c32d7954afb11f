"""Audit worker — pulls jobs from the queue and runs them one at a time.

Usage:
    python -m app.worker            # run until interrupted
    python -m app.worker --once     # process at most one job, then exit

Several worker processes may run side by side; each claims its own jobs.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Callable

from dotenv import load_dotenv
from sqlalchemy.orm import Session

from .agents.audit_agent.orchestrator import run_audit_job
from .config import AuditConfig
from .services.job_queue import claim_next_job
from .services.openai_client import GenerativeClient, OpenAIClient

logger = logging.getLogger(__name__)


async def process_next(
    *,
    session_factory: Callable[[], Session],
    client: GenerativeClient,
    config: AuditConfig,
) -> bool:
    """Claim and run one job. Returns False when the queue was empty."""
    db = session_factory()
    try:
        message = claim_next_job(db, stale_after=config.stale_after)
    finally:
        db.close()

    if message is None:
        return False

    await run_audit_job(message, session_factory=session_factory, client=client, config=config)
    return True


async def run_worker(
    *,
    session_factory: Callable[[], Session],
    client: GenerativeClient,
    config: AuditConfig,
    once: bool = False,
) -> None:
    logger.info("[WORKER] Started (poll every %.1fs)", config.poll_interval)
    while True:
        try:
            worked = await process_next(session_factory=session_factory, client=client, config=config)
        except Exception:
            # Queue/database hiccup; the job (if any) stays claimable
            logger.exception("[WORKER] Polling failed")
            worked = False

        if once:
            return
        if not worked:
            await asyncio.sleep(config.poll_interval)


async def _main(once: bool) -> None:
    from .database import SessionLocal, init_db

    config = AuditConfig.from_env()
    init_db()
    client = OpenAIClient.from_env(config)
    try:
        await run_worker(session_factory=SessionLocal, client=client, config=config, once=once)
    finally:
        await client.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the profit leak audit worker")
    parser.add_argument("--once", action="store_true", help="process at most one job and exit")
    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_main(args.once))
    except KeyboardInterrupt:
        logger.info("[WORKER] Shutting down")


if __name__ == "__main__":
    main()
