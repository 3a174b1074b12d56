"""
Decide the outcome of a sync run from its transform results.

  items   failures   state     code               cache
  > 0     none       success   -                  replace
  > 0     some       partial   PARTIAL_SUCCESS    replace
  0       some       error     TRANSFORM_FAILED   keep previous
  0       none       success   -                  replace with []
"""
from dataclasses import dataclass
from typing import List, Optional

from backlog.models.backlog import BacklogItem
from backlog.models.sync import SyncErrorCode, SyncState, TransformFailure


@dataclass
class SyncOutcome:
    state: SyncState
    replace_cache: bool
    items_synced: int
    items_failed: int
    error_code: Optional[SyncErrorCode] = None
    error_message: Optional[str] = None


def aggregate_results(
    items: List[BacklogItem],
    failures: List[TransformFailure],
) -> SyncOutcome:
    synced, failed = len(items), len(failures)

    if synced == 0 and failed > 0:
        return SyncOutcome(
            state=SyncState.ERROR,
            replace_cache=False,
            items_synced=synced,
            items_failed=failed,
            error_code=SyncErrorCode.TRANSFORM_FAILED,
            error_message=f"All {failed} item(s) failed to transform",
        )

    if failed > 0:
        return SyncOutcome(
            state=SyncState.PARTIAL,
            replace_cache=True,
            items_synced=synced,
            items_failed=failed,
            error_code=SyncErrorCode.PARTIAL_SUCCESS,
            error_message=f"{failed} item(s) failed to sync",
        )

    return SyncOutcome(
        state=SyncState.SUCCESS,
        replace_cache=True,
        items_synced=synced,
        items_failed=failed,
    )
