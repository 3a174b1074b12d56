"""
Main entrypoint.

Usage:
    python -m backlog          # serve the API (scheduler starts in the lifespan)
    python -m backlog sync     # run one sync now and print the resulting status
    uvicorn backlog.api.main:app --host 0.0.0.0 --port 8000  # same as the first
"""
import asyncio
import logging
import sys

from backlog.config import get_settings

logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_once() -> int:
    from backlog.db.engine import get_engine
    from backlog.linear.client import LinearClient
    from backlog.models.sync import SyncState, TriggerType
    from backlog.sync.history import SyncHistoryRecorder
    from backlog.sync.service import SyncService

    service = SyncService(
        LinearClient(), history=SyncHistoryRecorder(get_engine())
    )
    await service.run(trigger_type=TriggerType.MANUAL)

    status = service.get_status()
    print(status.model_dump_json(indent=2))
    return 1 if status.state is SyncState.ERROR else 0


def _serve() -> None:
    import uvicorn

    uvicorn.run("backlog.api.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    # Dispatch on first argument: `python -m backlog sync` or just `python -m backlog`
    if len(sys.argv) > 1 and sys.argv[1] == "sync":
        sys.exit(asyncio.run(_run_once()))
    else:
        _serve()
