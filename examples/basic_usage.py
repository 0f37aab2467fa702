#!/usr/bin/env python3
"""Durable task example: an expense approval workflow.

This demonstrates using the engine directly:

* load settings from `.env` / `DURABLE_TASKS_*`
* declare a task type with a decision, a wait and an interaction
* start an instance, approve it, and let a scheduler sweep finish it

Snapshots are written to the JSON file given with `--store`, so the
workflow can be continued across runs of this script.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from durable_tasks import Engine, EngineSettings, InlineExecutor, JsonFileStorage, Scheduler
from durable_tasks.definition import TaskBuilder

expense = TaskBuilder("expense_approval")
expense.attribute("amount", float, required=True)
expense.attribute("approved", bool, default=False)
expense.attribute("approver", str)
expense.starts_with("check_amount")
expense.decision("check_amount").condition(lambda task: task.amount <= 100).if_true(
    "auto_approve"
).if_false("await_approval")


@expense.action("auto_approve", then="paid")
def auto_approve(task) -> None:
    task.approved = True
    task.approver = "policy"


expense.wait_until("await_approval").condition(lambda task: task.approved, go_to="paid")
expense.result(
    "paid", lambda task, results: results.update(amount=task.amount, approver=task.approver)
)


@expense.interaction("approve")
def approve(task, approver: str) -> None:
    task.approved = True
    task.approver = approver


approve.when("await_approval")
ExpenseApproval = expense.register()


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run an expense approval workflow.")
    parser.add_argument("--store", type=Path, default=Path(".tasks/expenses.json"))
    sub = parser.add_subparsers(dest="command", required=True)

    submit = sub.add_parser("submit", help="Submit a new expense")
    submit.add_argument("amount", type=float)

    approve_cmd = sub.add_parser("approve", help="Approve a waiting expense")
    approve_cmd.add_argument("task_id")
    approve_cmd.add_argument("--approver", default="manager")

    sub.add_parser("sweep", help="Wake sleeping tasks and delete expired ones")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = EngineSettings()
    settings.setup_logging()
    engine = Engine(JsonFileStorage(args.store), InlineExecutor(), settings=settings)

    if args.command == "submit":
        task = engine.build(ExpenseApproval, background=True, amount=args.amount)
    elif args.command == "approve":
        task = engine.find(args.task_id)
        if task is None:
            print(f"No such task: {args.task_id}")
            return 1
        task = engine.interact(task, "approve", args.approver)
    else:
        result = Scheduler(engine).run_once()
        print(f"Woken: {result.woken}, failed: {result.failed}, deleted: {result.deleted}")
        return 0

    print(f"{task}")
    if task.is_completed:
        print(f"Results: {task.results}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
