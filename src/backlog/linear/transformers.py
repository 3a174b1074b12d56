"""
Linear issue → BacklogItem transformer.

Converts raw issue nodes from LinearClient.fetch_page() into BacklogItem
models. No network access here: the GraphQL query already embeds every
relation (state, assignee, project, team, labels) in the node dict.

transform_all() is the batch entry point used by the sync engine. It never
raises: a record that cannot be converted becomes a TransformFailure and the
rest of the batch carries on.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from backlog.config import get_settings
from backlog.models.backlog import (
    BacklogItem,
    Label,
    PriorityLabel,
    WorkflowStateType,
)
from backlog.models.sync import TransformFailure

logger = logging.getLogger(__name__)

PRIORITY_LABELS: Dict[int, PriorityLabel] = {
    0: PriorityLabel.NONE,
    1: PriorityLabel.URGENT,
    2: PriorityLabel.HIGH,
    3: PriorityLabel.NORMAL,
    4: PriorityLabel.LOW,
}

_VALID_STATE_TYPES = {t.value for t in WorkflowStateType}


@dataclass
class TransformResult:
    """Successfully converted items plus one failure entry per rejected record."""
    items: List[BacklogItem] = field(default_factory=list)
    failures: List[TransformFailure] = field(default_factory=list)


def priority_label(priority: Optional[int]) -> PriorityLabel:
    return PRIORITY_LABELS.get(priority, PriorityLabel.NONE)


def normalize_state_type(value: Any) -> WorkflowStateType:
    """Map Linear's workflow state type to our enum; unknown values become backlog."""
    if value in _VALID_STATE_TYPES:
        return WorkflowStateType(value)
    return WorkflowStateType.BACKLOG


def format_assignee_name(name: Optional[str], email: Optional[str]) -> Optional[str]:
    """
    Short display name for an assignee.

    A real name is used as-is. When Linear only has an e-mail (or the name
    is an e-mail), the local part is title-cased:
    "robert.hunnicutt@vixxo.com" → "Robert Hunnicutt".
    """
    raw = name or email
    if not raw:
        return None
    if "@" not in raw:
        return raw
    local_part = raw.split("@")[0]
    words = local_part.replace(".", " ").replace("_", " ").split(" ")
    title = " ".join(w[:1].upper() + w[1:].lower() for w in words)
    return title or raw


def is_new_item(created_at: datetime, *, days: Optional[int] = None, now: Optional[datetime] = None) -> bool:
    """True if created strictly less than `days` days ago (NEW_ITEM_DAYS_THRESHOLD)."""
    if days is None:
        days = get_settings().new_item_days_threshold
    if days < 0:
        days = 7
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return (now - created_at) < timedelta(days=days)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse Linear's ISO 8601 timestamps ("2026-02-05T10:00:00.000Z")."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def to_backlog_item(record: Dict[str, Any]) -> BacklogItem:
    """
    Convert one raw Linear issue node into a BacklogItem.

    Missing optional relations become None / defaults. Missing required
    fields (id, identifier, title, createdAt, updatedAt) or malformed
    values raise; transform_all() turns that into a TransformFailure.
    """
    state = record.get("state") or {}
    assignee = record.get("assignee") or {}
    project = record.get("project") or {}
    team = record.get("team") or {}
    label_nodes = (record.get("labels") or {}).get("nodes") or []

    created_at = _parse_datetime(record["createdAt"])
    updated_at = _parse_datetime(record["updatedAt"])
    if created_at is None or updated_at is None:
        raise ValueError("issue is missing createdAt/updatedAt")

    priority = int(record.get("priority") or 0)

    return BacklogItem(
        id=record["id"],
        identifier=record["identifier"],
        title=record["title"],
        description=record.get("description"),
        priority=priority,
        priority_label=priority_label(priority),
        status=state.get("name") or "Unknown",
        status_type=normalize_state_type(state.get("type")),
        assignee_id=assignee.get("id"),
        assignee_name=format_assignee_name(assignee.get("name"), assignee.get("email")),
        project_id=project.get("id"),
        project_name=project.get("name"),
        team_id=team.get("id") or "",
        team_name=team.get("name") or "",
        labels=[
            Label(id=n["id"], name=n["name"], color=n.get("color") or "")
            for n in label_nodes
        ],
        created_at=created_at,
        updated_at=updated_at,
        completed_at=_parse_datetime(record.get("completedAt")),
        due_date=record.get("dueDate"),
        sort_order=float(record.get("sortOrder") or 0.0),
        priority_sort_order=float(record.get("prioritySortOrder") or 0.0),
        url=record.get("url") or "",
        is_new=is_new_item(created_at),
    )


def transform_all(records: List[Dict[str, Any]]) -> TransformResult:
    """
    Convert a whole batch of raw issues, collecting per-record failures.

    Args:
        records: Raw issue node dicts, in fetch order.

    Returns:
        TransformResult; items keep the input order.
    """
    result = TransformResult()
    for record in records:
        try:
            result.items.append(to_backlog_item(record))
        except Exception as exc:
            record_id = str(_safe_get(record, "id") or "unknown")
            identifier = str(_safe_get(record, "identifier") or "unknown")
            message = str(exc) or exc.__class__.__name__
            result.failures.append(
                TransformFailure(record_id=record_id, identifier=identifier, error=message)
            )
            logger.warning("Transform failed for issue %s: %s", identifier, message)
    return result


def _safe_get(record: Any, key: str) -> Any:
    return record.get(key) if isinstance(record, dict) else None
