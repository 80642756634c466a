"""intelgate — CLI entrypoint.

One-shot commands::

    python -m intelgate.main --collect BTC --phase critical
    python -m intelgate.main --analyze ETH --wait

Long-running components::

    python -m intelgate.main --server
    python -m intelgate.main --worker --housekeeping
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from intelgate import __version__
from intelgate.config import get_settings
from intelgate.utils import setup_logging

logger = logging.getLogger("intelgate")

BANNER = rf"""
  _       _       _             _
 (_)_ __ | |_ ___| | __ _  __ _| |_ ___
 | | '_ \| __/ _ \ |/ _` |/ _` | __/ _ \
 | | | | | ||  __/ | (_| | (_| | ||  __/
 |_|_| |_|\__\___|_|\__, |\__,_|\__\___|  v{__version__}
                    |___/
  Quality-gated market intelligence
"""


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="intelgate",
        description="intelgate — collect market data, gate on quality, run analysis jobs",
    )
    commands = parser.add_argument_group("one-shot commands")
    commands.add_argument("--collect", metavar="SUBJECT", help="Collect data for SUBJECT")
    commands.add_argument("--phase", help="Only collect this phase (default: every required phase)")
    commands.add_argument("--analyze", metavar="SUBJECT", help="Request an analysis of SUBJECT")
    commands.add_argument("--wait", action="store_true", help="With --analyze: poll until the job finishes")
    commands.add_argument("--force", action="store_true", help="Refetch kinds that are still cached")

    group = parser.add_argument_group("components")
    group.add_argument("--server", action="store_true", help="Run FastAPI server")
    group.add_argument("--worker", action="store_true", help="Run the analysis job worker loop")
    group.add_argument("--housekeeping", action="store_true", help="Run stale-job and expiry sweeps")

    parser.add_argument("--mock", action="store_true", help="Enable mock mode (no real API calls)")
    parser.add_argument("--once", action="store_true", help="Run a single worker/housekeeping pass then exit")
    return parser


def _print(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _collect(services, args: argparse.Namespace) -> None:
    phases = [args.phase] if args.phase else services.settings.required_phases
    reports = await services.collector.collect_phases(args.collect, phases, force=args.force)
    for report in reports:
        _print(report.to_dict())
    bundle = await services.aggregator.aggregate(args.collect)
    logger.info(
        "%s context quality %d%% (missing: %s)",
        bundle.subject, bundle.aggregate_quality, ", ".join(k.value for k in bundle.missing_kinds) or "none",
    )


async def _analyze(services, args: argparse.Namespace) -> None:
    from intelgate.jobs.poller import Poller
    from intelgate.orchestrator import JobAccepted

    outcome = await services.orchestrator.request_analysis(args.analyze, force=args.force)
    _print(outcome.to_dict())
    if not (args.wait and isinstance(outcome, JobAccepted)):
        return

    settings = services.settings
    logger.info("Waiting for job %s (timeout %.0fs)", outcome.job.id, settings.poll_timeout_seconds)
    result = await Poller(services.jobs).wait(
        outcome.job.id,
        timeout=settings.poll_timeout_seconds,
        interval=settings.poll_interval_seconds,
    )
    _print(result.to_dict())


async def _run(args: argparse.Namespace) -> None:
    settings = get_settings()

    mock = args.mock or settings.mock_mode
    if args.mock:
        settings.__dict__["mock_mode"] = True

    components: list[str] = []
    if args.worker:
        components.append("worker")
    if args.housekeeping:
        components.append("housekeeping")
    if args.server:
        components.append("server")
    if not (components or args.collect or args.analyze):
        components = ["server"]

    from intelgate.db.database import dispose_db, init_db
    from intelgate.services import build_services

    try:
        await init_db()
        logger.info("Database ready")
    except Exception as exc:
        logger.warning("Database init skipped: %s", exc)

    services = build_services(settings, mock=mock)
    background_tasks: list[asyncio.Task] = []

    try:
        # ── One-shot commands ──────────────────────────────────────────
        if args.collect:
            await _collect(services, args)
        if args.analyze:
            await _analyze(services, args)

        # ── Job worker ─────────────────────────────────────────────────
        if "worker" in components:
            from intelgate.jobs.dispatch import RedisJobQueue
            from intelgate.workers.analysis_worker import AnalysisWorkerLoop

            queue = services.dispatcher if isinstance(services.dispatcher, RedisJobQueue) else None
            loop = AnalysisWorkerLoop(
                services.worker,
                services.jobs,
                queue=queue,
                interval_seconds=settings.worker_sweep_interval_seconds,
            )
            if args.once:
                handled = await loop.run_once()
                logger.info("Worker single-pass: %d jobs handled", handled)
            else:
                background_tasks.append(asyncio.create_task(loop.run(), name="analysis-worker"))

        # ── Housekeeping ───────────────────────────────────────────────
        if "housekeeping" in components:
            from intelgate.workers.housekeeping_worker import HousekeepingWorker

            hk = HousekeepingWorker(
                services.cache,
                services.jobs,
                stale_after_seconds=settings.job_stale_seconds,
                interval_seconds=settings.housekeeping_interval_seconds,
            )
            if args.once:
                logger.info("Housekeeping single-pass: %s", await hk.run_once())
            else:
                background_tasks.append(asyncio.create_task(hk.run(), name="housekeeping"))

        if args.once or not components:
            return

        # ── Server or keep-alive ───────────────────────────────────────
        if "server" in components:
            import uvicorn
            from intelgate.api.app import create_app

            app = create_app(services)
            config = uvicorn.Config(
                app,
                host=settings.api_host,
                port=settings.api_port,
                log_level=settings.log_level.lower(),
            )
            server = uvicorn.Server(config)
            await server.serve()
        else:
            logger.info("Workers running, press Ctrl+C to stop")
            await asyncio.gather(*background_tasks)
    finally:
        for t in background_tasks:
            t.cancel()
        await services.close()
        await dispose_db()


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level)

    print(BANNER, file=sys.stderr)

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
