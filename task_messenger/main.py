"""
Task Messenger entry point.

Runs one dispatch pass with SIGTERM/SIGINT handling: on a signal no new
tasks are started and in-flight tasks get SHUTDOWN_GRACE_SECONDS to finish.

Local rehearsal against an exported task list:
    DRY_RUN=true python -m task_messenger.main tasks.json
"""
import asyncio
import contextlib
import json
import logging
import signal
import sys
from typing import Optional

import httpx
from dotenv import load_dotenv

from task_messenger.shared.core.config import Settings, settings as default_settings
from task_messenger.shared.core.logging import setup_logging
from task_messenger.modules.crm.client import CRMClient, InMemoryCRMClient
from task_messenger.modules.whatsapp_dispatch.schemas import BatchStats
from task_messenger.modules.whatsapp_dispatch.services.dispatch_client import DispatchClient
from task_messenger.modules.whatsapp_dispatch.services.orchestrator import Orchestrator
from task_messenger.modules.whatsapp_dispatch.services.template_store import TemplateStore

logger = logging.getLogger("main")


def build_orchestrator(
    crm: CRMClient,
    settings: Settings = default_settings,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Orchestrator:
    """Wire the store, client and orchestrator for one process."""
    store = TemplateStore(settings)
    client = DispatchClient(settings, transport=transport)
    return Orchestrator(crm, store, client, settings)


async def serve(
    crm: CRMClient,
    settings: Settings = default_settings,
    orchestrator: Optional[Orchestrator] = None
) -> Optional[BatchStats]:
    """
    Run one pass under signal handling.

    Returns:
        BatchStats, or None when the grace window ran out and the pass was cancelled
    """
    orchestrator = orchestrator or build_orchestrator(crm, settings)
    loop = asyncio.get_running_loop()

    installed = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, orchestrator.request_shutdown)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Signal handler for {sig.name} not supported here")

    run = asyncio.ensure_future(orchestrator.run_once())
    shutdown = asyncio.ensure_future(orchestrator.wait_for_shutdown())

    try:
        await asyncio.wait({run, shutdown}, return_when=asyncio.FIRST_COMPLETED)
        if run.done():
            return run.result()

        grace = settings.SHUTDOWN_GRACE_SECONDS
        logger.info(f"Waiting up to {grace:g}s for in-flight tasks")
        try:
            return await asyncio.wait_for(asyncio.shield(run), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning("Grace window elapsed, cancelling remaining work")
            run.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await run
            return None
    finally:
        shutdown.cancel()
        for sig in installed:
            loop.remove_signal_handler(sig)
        await orchestrator.client.aclose()


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    load_dotenv()
    settings = Settings()
    setup_logging(settings.LOG_LEVEL)

    if not argv:
        print("Usage: python -m task_messenger.main <tasks.json>")
        return 2

    with open(argv[0], encoding="utf-8") as f:
        tasks = json.load(f)

    crm = InMemoryCRMClient(tasks)
    stats = asyncio.run(serve(crm, settings))
    if stats is None:
        return 1

    print(json.dumps(stats.to_dict(), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
