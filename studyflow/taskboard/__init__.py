"""Task board module: lifecycle, realtime sync and user actions."""

from .actions import TaskActions, TaskDraft
from .app import StudyFlowApp
from .lifecycle import STATUS_MAP, Transition, advance
from .models import Task, TaskStatus
from .sync import LoadingState, SyncController

__all__ = [
    "LoadingState",
    "STATUS_MAP",
    "StudyFlowApp",
    "SyncController",
    "Task",
    "TaskActions",
    "TaskDraft",
    "TaskStatus",
    "Transition",
    "advance",
]
