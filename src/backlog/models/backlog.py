"""Backlog item models: flat, JSON-safe views of Linear issues."""
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class PriorityLabel(str, Enum):
    NONE = "None"
    URGENT = "Urgent"
    HIGH = "High"
    NORMAL = "Normal"
    LOW = "Low"


class WorkflowStateType(str, Enum):
    BACKLOG = "backlog"
    UNSTARTED = "unstarted"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Label(BaseModel):
    id: str
    name: str
    color: str


class BacklogItem(BaseModel):
    """One Linear issue as shown in the backlog."""

    id: str
    identifier: str  # e.g. "VIX-338"
    title: str
    description: Optional[str] = None
    priority: int = 0  # 0 None, 1 Urgent, 2 High, 3 Normal, 4 Low
    priority_label: PriorityLabel = PriorityLabel.NONE
    status: str = "Unknown"  # workflow state name, e.g. "In Progress"
    status_type: WorkflowStateType = WorkflowStateType.BACKLOG

    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    team_id: str = ""
    team_name: str = ""
    labels: List[Label] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    due_date: Optional[date] = None

    sort_order: float = 0.0
    priority_sort_order: float = 0.0
    url: str = ""
    is_new: bool = False
