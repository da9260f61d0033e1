"""
Constants for task status, validation limits and sync tuning.
"""
from __future__ import annotations

# Task status (stored in tasks.status)
TASK_STATUS_PENDING = "pending"
TASK_STATUS_IN_PROGRESS = "in_progress"
TASK_STATUS_COMPLETED = "completed"
TASK_STATUSES = (TASK_STATUS_PENDING, TASK_STATUS_IN_PROGRESS, TASK_STATUS_COMPLETED)

# Field limits
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500

# Identity matching: unlinked local task and remote task created this close are one task
MATCH_WINDOW_SECONDS = 120

# Auto-sync
DEFAULT_SYNC_INTERVAL_SECONDS = 30
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

# REST surface (relative to API_BASE_URL)
ENDPOINT_TASKS = "/tasks"
ENDPOINT_TASKS_SYNC = "/tasks/sync"
