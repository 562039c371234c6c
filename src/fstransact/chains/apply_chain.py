"""Apply chain for running declarative plans as transactions.

This module provides the ApplyChain class that turns a validated Plan into a
Transaction, executes it, optionally rolls it back on failure, and reports
progress through structured logging and Rich console output.
"""

import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)

from fstransact.core.config import resolve_journal_dir, resolve_temp_dir
from fstransact.core.errors import TransactionExecuteError, TransactionRollbackError
from fstransact.core.schemas import ApplyResult, ApplyStatus, Plan
from fstransact.core.transaction import Transaction
from fstransact.fs.manifest import TransactionJournal
from fstransact.fs.operations import Operation, build_operation


@dataclass
class ApplyOptions:
    """Options for apply operations.

    Attributes:
        temp_dir: Backup location; overrides the plan's and the configured one
        journal_dir: Directory for the JSONL journal; None uses configuration
        auto_rollback: Roll back automatically when execution fails
    """

    temp_dir: str | None = None
    journal_dir: str | None = None
    auto_rollback: bool = True


class ApplyChain:
    """Runs a plan as one transaction with logging and console output."""

    def __init__(self, logger: Any = None, ui: Console | None = None) -> None:
        """Initialize apply chain.

        Args:
            logger: Optional structlog logger instance
            ui: Optional Rich console for output
        """
        self._logger = logger or structlog.get_logger()
        self._ui = ui or Console()

    def apply(self, plan: Plan, opts: ApplyOptions | None = None) -> ApplyResult:
        """Apply every operation of a plan as a single transaction.

        Args:
            plan: Validated plan
            opts: Apply options

        Returns:
            ApplyResult describing how far the transaction got
        """
        opts = opts or ApplyOptions()
        transaction_id = uuid.uuid4().hex
        temp_dir = resolve_temp_dir(opts.temp_dir or plan.temp_dir)
        journal_dir = resolve_journal_dir(opts.journal_dir)

        bound_logger = self._logger.bind(
            plan_id=plan.plan_id,
            transaction_id=transaction_id,
            temp_dir=str(temp_dir),
            auto_rollback=opts.auto_rollback,
        )

        journal = (
            TransactionJournal(transaction_id, journal_dir)
            if journal_dir is not None
            else None
        )
        start_time = time.time()
        transaction = Transaction(
            temp_dir,
            transaction_id=transaction_id,
            journal=journal,
            logger=bound_logger,
        )
        try:
            for spec in plan.operations:
                transaction.add(build_operation(spec, temp_dir))
            result = self._run(plan, transaction, opts, bound_logger)
        except BaseException:
            transaction.close()
            raise
        finally:
            if journal is not None:
                journal.close()

        if result.status in ("failed", "rollback_failed"):
            # Changes left in place can only be undone by hand from the backups
            retained = [
                str(operation.backup_path)
                for operation in transaction.operations
                if getattr(operation, "backup_path", None) is not None
            ]
            bound_logger.warning("apply.backups_retained", backups=retained)
        else:
            transaction.close()

        if journal is not None:
            result.journal_path = journal.path

        bound_logger.info(
            "apply.summary",
            status=result.status,
            total_operations=result.total_operations,
            execution_count=result.execution_count,
            failed_index=result.failed_index,
            rollback_failed_index=result.rollback_failed_index,
            elapsed_ms=int((time.time() - start_time) * 1000),
            journal_path=str(result.journal_path) if result.journal_path else None,
        )
        self._show_summary(result)
        return result

    def _run(
        self,
        plan: Plan,
        transaction: Transaction,
        opts: ApplyOptions,
        bound_logger: Any,
    ) -> ApplyResult:
        operations = transaction.operations

        try:
            with self._create_progress() as progress:
                task = progress.add_task(
                    f"Apply {plan.plan_id}", total=len(operations)
                )
                transaction.execute()
                progress.update(task, completed=transaction.execution_count)
        except TransactionExecuteError as exc:
            self._show_execution(operations, failed_index=exc.index)
            self._ui.print(f"  operation {exc.index}: {escape(str(exc.cause))}")

            if not opts.auto_rollback:
                return self._result(plan, transaction, "failed", error=str(exc))

            return self._rollback(plan, transaction, exc, bound_logger)

        self._show_execution(operations, failed_index=None)
        return self._result(plan, transaction, "committed")

    def _rollback(
        self,
        plan: Plan,
        transaction: Transaction,
        cause: TransactionExecuteError,
        bound_logger: Any,
    ) -> ApplyResult:
        self._ui.print("[yellow]Rolling back...[/yellow]")
        try:
            transaction.rollback()
        except TransactionRollbackError as exc:
            bound_logger.error(
                "apply.rollback_failed",
                index=exc.index,
                pending=transaction.pending_rollback,
                error=str(exc.cause),
            )
            self._ui.print(
                f"[red]Rollback failed[/red] at operation {exc.index}: "
                f"{escape(str(exc.cause))}. "
                f"Operations {transaction.pending_rollback} need manual recovery."
            )
            return self._result(
                plan, transaction, "rollback_failed", error=f"{cause}; {exc}"
            )

        self._ui.print("[green]Rollback completed[/green]")
        return self._result(plan, transaction, "rolled_back", error=str(cause))

    def _result(
        self,
        plan: Plan,
        transaction: Transaction,
        status: ApplyStatus,
        *,
        error: str | None = None,
    ) -> ApplyResult:
        return ApplyResult(
            plan_id=plan.plan_id,
            transaction_id=transaction.transaction_id,
            status=status,
            total_operations=len(transaction),
            execution_count=transaction.execution_count,
            failed_index=transaction.failed_index,
            rollback_failed_index=transaction.rollback_failed_index,
            error=error,
        )

    def _create_progress(self) -> Progress:
        """Create Rich progress display."""
        return Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=self._ui,
            transient=False,
        )

    def _show_execution(
        self, operations: tuple[Operation, ...], *, failed_index: int | None
    ) -> None:
        """Show one line per operation that was attempted."""
        for index, operation in enumerate(operations):
            if not operation.attempted:
                break
            label = _label(operation)
            if index == failed_index:
                self._ui.print(f"[red]FAILED[/red] {label}")
            else:
                self._ui.print(f"[green]DONE[/green] {label}")

    def _show_summary(self, result: ApplyResult) -> None:
        colors = {
            "committed": "green",
            "rolled_back": "yellow",
            "failed": "red",
            "rollback_failed": "red",
        }
        color = colors[result.status]
        self._ui.print(
            f"[{color}]{result.status.upper()}[/{color}] "
            f"{result.execution_count}/{result.total_operations} operations attempted"
        )


def _label(operation: Operation) -> str:
    description = operation.describe()
    target = Path(description["path"]).name or description["path"]
    if "dest" in description:
        return escape(f"{operation.kind.value} {target} -> {description['dest']}")
    return escape(f"{operation.kind.value} {target}")
