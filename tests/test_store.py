from datetime import date
from pathlib import Path

import pytest

from studio_task_engine import (
    ApprovalSlot,
    ApprovalStage,
    DirectoryRoleProvider,
    InMemoryTaskStore,
    JsonFileTaskStore,
    Project,
    Role,
    TaskNotFoundError,
    TaskService,
    TaskStatus,
    User,
    VoteAction,
)
from studio_task_engine.store import sanitize_project_id


PROJECT = Project(
    id="villa-7",
    name="Villa 7",
    client_id="client-1",
    lead_designer_id="designer-1",
    start_date=date(2025, 3, 1),
    deadline=date(2025, 3, 31),
)
USERS = [
    User(id="admin-1", role=Role.ADMIN),
    User(id="designer-1", role=Role.DESIGNER),
    User(id="vendor-1", role=Role.VENDOR),
    User(id="client-1", role=Role.CLIENT),
    User(id="client-2", role=Role.CLIENT),
]


@pytest.fixture
def roles() -> DirectoryRoleProvider:
    return DirectoryRoleProvider(USERS, [PROJECT])


@pytest.fixture
def memory_service(make_task, engine, roles) -> TaskService:
    store = InMemoryTaskStore()
    store.put_project(
        PROJECT,
        [
            make_task("a", status=TaskStatus.IN_PROGRESS),
            make_task("b", dependencies=("a",)),
            make_task("c", checklist=(True, False), status=TaskStatus.IN_PROGRESS),
        ],
    )
    return TaskService(store, roles, engine=engine)


def test_mutation_is_saved(memory_service) -> None:
    result = memory_service.toggle_checklist_item("villa-7", "c", "vendor-1", "c-item-1")

    assert result.ok and result.saved
    stored = {task.id: task for task in memory_service.store.load_project_tasks("villa-7")}
    assert stored["c"].status == TaskStatus.REVIEW


def test_rejection_is_returned_not_saved(memory_service) -> None:
    before = memory_service.store.load_project_tasks("villa-7")
    result = memory_service.set_status("villa-7", "b", TaskStatus.IN_PROGRESS)

    assert not result.ok
    assert result.rejection.code == "dependency_blocked"
    assert result.task.status == TaskStatus.TODO
    assert memory_service.store.load_project_tasks("villa-7") == before


def test_noop_is_not_saved(memory_service) -> None:
    result = memory_service.resume("villa-7", "a", "admin-1")
    assert result.ok and not result.saved


def test_unknown_task_raises(memory_service) -> None:
    with pytest.raises(TaskNotFoundError):
        memory_service.advance("villa-7", "nope")


def test_client_votes_only_on_own_project(memory_service) -> None:
    foreign = memory_service.vote(
        "villa-7",
        "c",
        "client-2",
        stage=ApprovalStage.COMPLETION,
        slot=ApprovalSlot.CLIENT,
        action=VoteAction.APPROVE,
    )
    assert foreign.rejection.code == "unauthorized_vote"

    own = memory_service.vote(
        "villa-7",
        "c",
        "client-1",
        stage=ApprovalStage.COMPLETION,
        slot=ApprovalSlot.CLIENT,
        action=VoteAction.APPROVE,
    )
    assert own.ok and own.saved


def test_freeze_and_comment_through_service(memory_service) -> None:
    assert memory_service.freeze("villa-7", "a", "designer-1", TaskStatus.ON_HOLD).task.status == TaskStatus.ON_HOLD
    comment = memory_service.add_comment("villa-7", "a", "client-1", "Why on hold?")
    assert comment.rejection.code == "task_frozen"
    assert memory_service.restore("villa-7", "a", "admin-1").rejection.code == "invalid_transition"
    assert memory_service.resume("villa-7", "a", "admin-1").task.status == TaskStatus.IN_PROGRESS


def test_rerun_on_fresher_snapshot(make_task, engine, roles) -> None:
    class RacingStore(InMemoryTaskStore):
        """Another writer ticks item 0 between our read and our write."""

        raced = False

        def load_project_tasks(self, project_id):
            tasks = super().load_project_tasks(project_id)
            if not self.raced:
                self.raced = True
                task = tasks[0]
                ticked = task.model_copy(
                    update={"checklist": (task.checklist[0].model_copy(update={"is_completed": True}),) + task.checklist[1:]}
                )
                self.save_task(project_id, ticked)
            return tasks

    store = RacingStore()
    store.put_project(PROJECT, [make_task("c", checklist=(False, False))])
    service = TaskService(store, roles, engine=engine)

    result = service.toggle_checklist_item("villa-7", "c", "vendor-1", "c-item-1")

    assert result.saved
    assert result.task.completed_items == 2
    assert store.load_project_tasks("villa-7")[0].status == TaskStatus.REVIEW


def test_blocked_report_and_gantt(memory_service) -> None:
    report = memory_service.blocked_report("villa-7")
    assert {task_id: [t.id for t in blocking] for task_id, blocking in report.items()} == {"b": ["a"]}

    layout = memory_service.gantt("villa-7")
    assert layout.axis_start == date(2025, 2, 28)
    assert layout.axis_end == date(2025, 4, 1)
    assert layout.row("b").conflict is True


def test_overdue_sweep_is_persisted(memory_service) -> None:
    swept = memory_service.run_overdue_sweep("villa-7", date(2025, 3, 11))
    assert [task.id for task in swept] == ["a", "b", "c"]
    assert {task.status for task in memory_service.store.load_project_tasks("villa-7")} == {TaskStatus.OVERDUE}


def test_json_store_round_trip(tmp_path: Path, make_task) -> None:
    store = JsonFileTaskStore(tmp_path)
    store.save_project(PROJECT)
    store.save_task("villa-7", make_task("a"))
    store.save_task("villa-7", make_task("b", dependencies=("a",)))
    store.save_task("villa-7", make_task("a", status=TaskStatus.IN_PROGRESS))

    reopened = JsonFileTaskStore(tmp_path)
    tasks = reopened.load_project_tasks("villa-7")
    assert [(task.id, task.status) for task in tasks] == [("a", TaskStatus.IN_PROGRESS), ("b", TaskStatus.TODO)]
    assert reopened.load_project("villa-7") == PROJECT
    assert '"dueDate"' in store.path_for("villa-7").read_text(encoding="utf-8")


def test_json_store_missing_project(tmp_path: Path) -> None:
    store = JsonFileTaskStore(tmp_path)
    assert store.load_project_tasks("nobody") == []
    assert store.load_project("nobody") is None


def test_json_store_rejects_corrupt_file(tmp_path: Path) -> None:
    store = JsonFileTaskStore(tmp_path)
    store.path_for("broken").write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        store.load_project_tasks("broken")


def test_service_over_json_store(tmp_path: Path, make_task, engine, roles) -> None:
    store = JsonFileTaskStore(tmp_path)
    store.save_project(PROJECT)
    store.save_task("villa-7", make_task("a", checklist=(False,)))
    service = TaskService(store, roles, engine=engine)

    assert service.toggle_checklist_item("villa-7", "a", "admin-1", "a-item-0").saved
    assert JsonFileTaskStore(tmp_path).load_project_tasks("villa-7")[0].status == TaskStatus.REVIEW


def test_sanitize_project_id() -> None:
    assert sanitize_project_id(" villa 7/../x ") == "villa-7-..-x"
    with pytest.raises(ValueError):
        sanitize_project_id("   ")
    with pytest.raises(ValueError):
        sanitize_project_id("///")
