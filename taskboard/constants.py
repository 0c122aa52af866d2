"""
Constants for remote tables, assignment roles and error codes.
"""
from __future__ import annotations

# Remote tables (relation names in the store)
TABLE_TASKS = "tasks"
TABLE_SUBTASKS = "subtasks"
TABLE_COMMENTS = "comments"
TABLE_TASK_ASSIGNMENTS = "task_assignments"
TABLE_SUBTASK_ASSIGNMENTS = "subtask_assignments"

ENTITY_TABLES = (TABLE_TASKS, TABLE_SUBTASKS, TABLE_COMMENTS)
ASSIGNMENT_TABLES = (TABLE_TASK_ASSIGNMENTS, TABLE_SUBTASK_ASSIGNMENTS)
WATCHED_TABLES = ENTITY_TABLES + ASSIGNMENT_TABLES

# Assignment roles (stored in *_assignments.role)
ROLE_ASSIGNEE = "assignee"
DEFAULT_ROLE = ROLE_ASSIGNEE

# Remote store error codes (postgres / postgrest compatible)
ERROR_UNIQUE_VIOLATION = "23505"
ERROR_FOREIGN_KEY_VIOLATION = "23503"
ERROR_NOT_NULL_VIOLATION = "23502"
ERROR_CHECK_VIOLATION = "23514"
ERROR_PERMISSION_DENIED = "42501"
ERROR_UNDEFINED_TABLE = "42P01"
ERROR_UNDEFINED_COLUMN = "42703"
ERROR_NO_ROWS = "PGRST116"
ERROR_JWT_EXPIRED = "PGRST301"
ERROR_TRANSPORT = "transport"
