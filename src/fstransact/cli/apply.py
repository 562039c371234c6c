"""CLI commands for applying and validating transaction plans."""

from __future__ import annotations

import importlib
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import structlog
from pydantic import ValidationError
from rich.console import Console

if TYPE_CHECKING:  # pragma: no cover - typing only
    import typer
    from typer import Typer as TyperType
else:  # pragma: no cover - runtime fallback for typing
    typer = importlib.import_module("typer")
    TyperType = Any

from fstransact.chains.apply_chain import ApplyChain, ApplyOptions
from fstransact.core.schemas import Plan

app: TyperType = typer.Typer(
    help="Apply filesystem plans as all-or-nothing transactions."
)

PlanArgument = Annotated[
    Path,
    typer.Argument(
        help="Path to a JSON plan file.",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
]
TempDirOption = Annotated[
    Path | None,
    typer.Option("--temp-dir", help="Directory for backups (overrides the plan)."),
]
JournalDirOption = Annotated[
    Path | None,
    typer.Option("--journal-dir", help="Write a JSONL journal into this directory."),
]
NoRollbackFlag = Annotated[
    bool,
    typer.Option("--no-rollback", help="Leave partial changes in place on failure."),
]
JsonFlag = Annotated[
    bool,
    typer.Option("--json", help="Emit the apply result as JSON."),
]


def _load_plan(plan_file: Path) -> Plan:
    try:
        return Plan.model_validate_json(plan_file.read_text(encoding="utf-8"))
    except ValidationError as exc:
        typer.secho(f"Invalid plan {plan_file}: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc


def apply_plan(
    plan_file: PlanArgument,
    temp_dir: TempDirOption = None,
    journal_dir: JournalDirOption = None,
    no_rollback: NoRollbackFlag = False,
    json_output: JsonFlag = False,
) -> None:
    """Apply a plan; exit 1 if it did not commit, 2 if rollback also failed."""

    plan = _load_plan(plan_file)

    # Keep stdout for the JSON document
    ui = Console(stderr=True) if json_output else Console()
    chain = ApplyChain(ui=ui)
    result = chain.apply(
        plan,
        ApplyOptions(
            temp_dir=str(temp_dir) if temp_dir is not None else None,
            journal_dir=str(journal_dir) if journal_dir is not None else None,
            auto_rollback=not no_rollback,
        ),
    )

    if json_output:
        typer.echo(result.model_dump_json(indent=2))

    if result.status == "committed":
        return
    raise typer.Exit(code=2 if result.status == "rollback_failed" else 1)


def validate_plan(plan_file: PlanArgument) -> None:
    """Validate a plan and list its operations without touching the filesystem."""

    plan = _load_plan(plan_file)
    for index, spec in enumerate(plan.operations):
        line = f"{index}: {spec.kind.value} {spec.path}"
        if spec.dest is not None:
            line += f" -> {spec.dest}"
        typer.echo(line)

    typer.secho(
        f"Plan {plan.plan_id} is valid ({len(plan.operations)} operations)",
        fg=typer.colors.GREEN,
    )


def run_cli(args: Sequence[str] | None = None) -> None:
    app(args=args)


def main() -> None:
    """Console script entry point; structured logs go to stderr."""
    structlog.configure(logger_factory=structlog.PrintLoggerFactory(sys.stderr))
    app()


app.command("apply")(apply_plan)
app.command("validate")(validate_plan)
