"""
Tests for the pure filter/search helpers.
"""
from taskboard.domain.board.models import (
    Assignment,
    Department,
    EntityKind,
    Subtask,
    Task,
    TaskPriority,
    TaskStatus,
)
from taskboard.domain.board.queries import (
    BoardFilter,
    apply_board_filter,
    apply_filters,
    filter_by_department,
    filter_by_priority,
    filter_by_status,
    group_by_status,
    search_tasks,
    subtasks_for_user,
    tasks_for_user,
)
from taskboard.domain.board.store import EntityStore

TASKS = [
    Task(id="t1", title="Fix Pump", created_by="u0", priority=TaskPriority.CRITICAL,
         department=Department.MAINTENANCE),
    Task(id="t2", title="Clean Valve", created_by="u0", description="pump room, north side",
         status=TaskStatus.COMPLETED, department=Department.PRODUCTION),
    Task(id="t3", title="Audit checklist", created_by="u0", status=TaskStatus.IN_PROGRESS,
         priority=TaskPriority.LOW, department=Department.QUALITY),
]


def _ids(tasks):
    return [t.id for t in tasks]


def test_search_is_case_insensitive_substring_of_title():
    """Searching "pump" among Fix Pump / Clean Valve returns exactly Fix Pump."""
    tasks = [
        Task(id="a", title="Fix Pump", created_by="u0"),
        Task(id="b", title="Clean Valve", created_by="u0"),
    ]
    assert _ids(search_tasks(tasks, "pump")) == ["a"]


def test_search_also_matches_description():
    assert _ids(search_tasks(TASKS, "PUMP")) == ["t1", "t2"]


def test_blank_search_returns_everything():
    assert _ids(search_tasks(TASKS, "   ")) == ["t1", "t2", "t3"]


def test_exact_filters():
    assert _ids(filter_by_status(TASKS, TaskStatus.IN_PROGRESS)) == ["t3"]
    assert _ids(filter_by_status(TASKS, "Completed")) == ["t2"]
    assert _ids(filter_by_priority(TASKS, TaskPriority.LOW)) == ["t3"]
    assert _ids(filter_by_department(TASKS, "Maintenance")) == ["t1"]


def test_search_and_filter_compose_with_and():
    assert _ids(apply_filters(TASKS, query="pump", status=TaskStatus.COMPLETED)) == ["t2"]
    assert _ids(apply_filters(TASKS, query="pump", priority=TaskPriority.LOW)) == []
    assert _ids(apply_filters(TASKS, query="pump", board_filter=BoardFilter.ATTENTION)) == ["t1"]


def test_board_presets():
    assert _ids(apply_board_filter(TASKS, BoardFilter.ALL)) == ["t1", "t2", "t3"]
    assert _ids(apply_board_filter(TASKS, "completed")) == ["t2"]
    assert _ids(apply_board_filter(TASKS, BoardFilter.ATTENTION)) == ["t1"]


def test_group_by_status_has_every_column():
    columns = group_by_status(TASKS[:1])
    assert list(columns) == [TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED]
    assert _ids(columns[TaskStatus.TODO]) == ["t1"]
    assert columns[TaskStatus.COMPLETED] == []


def _assigned_board():
    store = EntityStore()
    store.init(
        tasks=TASKS,
        subtasks=[
            Subtask(id="s1", task_id="t1", title="Drain line", order_index=0),
            Subtask(id="s2", task_id="t1", title="Swap seal", order_index=1),
            Subtask(id="s3", task_id="t3", title="Sign off", order_index=0),
        ],
        assignments=[
            Assignment(EntityKind.TASK, "t1", "u1"),
            Assignment(EntityKind.TASK, "t3", "u2"),
            Assignment(EntityKind.SUBTASK, "s2", "u2"),
        ],
    )
    return store


def test_tasks_for_user_follows_task_edges_only():
    store = _assigned_board()
    assert _ids(tasks_for_user(store, "u1")) == ["t1"]
    # a subtask edge does not make the parent task "mine"
    assert _ids(tasks_for_user(store, "u2")) == ["t3"]
    assert tasks_for_user(store, "nobody") == []


def test_subtasks_for_user_with_and_without_inherited_assignees():
    store = _assigned_board()
    # s1 inherits u1 from t1; s2 has its own assignee so u1 does not reach it
    assert [st.id for st in subtasks_for_user(store, "u1")] == ["s1"]
    assert [st.id for st in subtasks_for_user(store, "u2")] == ["s2", "s3"]
    assert [st.id for st in subtasks_for_user(store, "u2", include_inherited=False)] == ["s2"]
    assert subtasks_for_user(store, "u1", include_inherited=False) == []
