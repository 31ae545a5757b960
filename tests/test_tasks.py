from __future__ import annotations

from pathlib import Path
import textwrap

from ralph_commander.documents import TaskRecord, load_tasks, parse_tasks

PLAN = textwrap.dedent(
    """
    # Test Plan
    - [x] **Phase 1: Task 1**
        - [x] Subtask 1.1
        - [ ] Subtask 1.2
    - [ ] **Phase 2: Task 2**
        - [ ] Subtask 2.1
    """
)


def test_parse_tasks_phase_heading_and_checkboxes() -> None:
    raw = "**Phase 1: Setup**\n- [x] Install tools\n- [ ] Write config\n"

    tasks = parse_tasks(raw)

    assert tasks == [
        TaskRecord(description="Install tools", completed=True, phase="Setup"),
        TaskRecord(description="Write config", completed=False, phase="Setup"),
    ]


def test_parse_tasks_checkbox_headings_are_not_tasks() -> None:
    tasks = parse_tasks(PLAN)

    assert [task.description for task in tasks] == ["Subtask 1.1", "Subtask 1.2", "Subtask 2.1"]
    assert [task.completed for task in tasks] == [True, False, False]
    assert [task.phase for task in tasks] == ["Task 1", "Task 1", "Task 2"]


def test_parse_tasks_uncategorized_before_first_phase() -> None:
    tasks = parse_tasks("- [ ] Orphan task\n## Notes\n**Phase 3: Ship**\n- [X] Release\n")

    assert tasks[0].phase == "Uncategorized"
    assert tasks[1] == TaskRecord(description="Release", completed=True, phase="Ship")


def test_parse_tasks_skips_ambiguous_phase_markers() -> None:
    tasks = parse_tasks("- [ ] **Phase two** without a number\n- [ ] Real task\n")

    assert [task.description for task in tasks] == ["Real task"]


def test_parse_tasks_keeps_duplicates_in_order() -> None:
    tasks = parse_tasks("- [ ] Same\n* [x] Same\n")

    assert [(task.description, task.completed) for task in tasks] == [("Same", False), ("Same", True)]


def test_parse_tasks_is_idempotent() -> None:
    assert parse_tasks(PLAN) == parse_tasks(PLAN)


def test_parse_tasks_ignores_non_checklist_lines() -> None:
    assert parse_tasks("Just prose\n- plain bullet\n- [] malformed\n") == []


def test_load_tasks_missing_file(tmp_path: Path) -> None:
    assert load_tasks(tmp_path / "@fix_plan.md") == []


def test_load_tasks_reads_file(tmp_path: Path) -> None:
    path = tmp_path / "@fix_plan.md"
    path.write_text(PLAN, encoding="utf-8")

    assert len(load_tasks(path)) == 3
