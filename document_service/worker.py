from __future__ import annotations

import asyncio
import logging
import signal

from document_service.background import BackgroundHost
from document_service.cli import build_parser
from document_service.config import ServiceConfig
from document_service.db import close_pool
from document_service.logging_config import setup_logging
from document_service.service import build_host


async def run_once(host: BackgroundHost) -> int:
    """One inbox cycle then one reconciliation cycle; 2 if anything failed."""
    logger = logging.getLogger("document_service.worker")
    failed = 0
    if host.inbox is not None:
        outcome = await host.inbox.run_cycle()
        logger.info("Inbox: %s", outcome.as_dict())
        failed += outcome.failed
    if host.reconciler is not None and host.reconciler.config.enabled:
        report = await host.reconciler.run_cycle()
        logger.info("Reconciliation: indexed=%d removed=%d healthy=%s", report.indexed, report.removed, report.healthy)
        failed += report.aggregate.failed
        if not report.healthy:
            failed += 1
    return 0 if failed == 0 else 2


async def _amain() -> int:
    parser = build_parser()
    args = parser.parse_args()

    setup_logging(level=args.log_level.upper())
    logger = logging.getLogger("document_service.worker")

    cfg = ServiceConfig.from_env()
    cfg.validate()

    host = build_host(
        cfg,
        with_inbox=args.only in (None, "inbox"),
        with_indexing=args.only in (None, "index"),
    )

    try:
        if args.once:
            return await run_once(host)

        loop = asyncio.get_running_loop()
        stopping = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stopping.set)

        host.start()
        waiter = asyncio.create_task(host.wait())
        stopper = asyncio.create_task(stopping.wait())
        await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        logger.info("Shutting down")
        stopper.cancel()
        await host.stop()
        return 0
    finally:
        await close_pool()


def main() -> None:
    raise SystemExit(asyncio.run(_amain()))


if __name__ == "__main__":
    main()
