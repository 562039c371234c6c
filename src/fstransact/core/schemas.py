"""Pydantic schemas for declarative transaction plans.

These schemas describe a transaction as data:
- OperationKind: The closed set of reversible operation kinds
- OperationSpec: One operation in a plan
- Plan: An ordered list of operations applied as a single transaction
- ApplyResult: Outcome of applying a plan

All schemas use Pydantic v2 for validation and serialization.
"""

import base64
import binascii
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import (
    BaseModel,
    Field,
    field_serializer,
    model_validator,
)


class OperationKind(str, Enum):
    """Kinds of reversible filesystem operations.

    Attributes:
        CREATE_FILE: Create a new empty file
        CREATE_DIRECTORY: Create a directory and any missing parents
        WRITE_FILE: Replace the contents of an existing file
        APPEND_FILE: Append to an existing file
        COPY_FILE: Copy a file to a new path
        COPY_DIRECTORY: Copy a directory tree to a new path
        MOVE_FILE: Rename a file
        MOVE_DIRECTORY: Rename a directory
        DELETE_FILE: Remove a file
        DELETE_DIRECTORY: Remove a directory tree
    """

    CREATE_FILE = "create_file"
    CREATE_DIRECTORY = "create_directory"
    WRITE_FILE = "write_file"
    APPEND_FILE = "append_file"
    COPY_FILE = "copy_file"
    COPY_DIRECTORY = "copy_directory"
    MOVE_FILE = "move_file"
    MOVE_DIRECTORY = "move_directory"
    DELETE_FILE = "delete_file"
    DELETE_DIRECTORY = "delete_directory"

    @property
    def needs_dest(self) -> bool:
        """True for kinds that take a destination path."""
        return self in _DEST_KINDS

    @property
    def needs_payload(self) -> bool:
        """True for kinds that carry bytes to write."""
        return self in _PAYLOAD_KINDS

    @property
    def needs_backup(self) -> bool:
        """True for kinds that snapshot the target before mutating it."""
        return self in _BACKUP_KINDS


_DEST_KINDS = frozenset(
    {
        OperationKind.COPY_FILE,
        OperationKind.COPY_DIRECTORY,
        OperationKind.MOVE_FILE,
        OperationKind.MOVE_DIRECTORY,
    }
)
_PAYLOAD_KINDS = frozenset({OperationKind.WRITE_FILE, OperationKind.APPEND_FILE})
_BACKUP_KINDS = frozenset(
    {
        OperationKind.WRITE_FILE,
        OperationKind.APPEND_FILE,
        OperationKind.DELETE_FILE,
        OperationKind.DELETE_DIRECTORY,
    }
)


class OperationSpec(BaseModel):
    """A single operation in a plan.

    Attributes:
        kind: Operation kind
        path: Target of the action (source for copy/move)
        dest: Destination path (copy/move only)
        content: Payload for write/append, encoded per ``encoding``
        encoding: ``utf-8`` for text payloads, ``base64`` for binary ones
    """

    kind: OperationKind
    path: Path
    dest: Path | None = None
    content: str | None = None
    encoding: Literal["utf-8", "base64"] = "utf-8"

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_fields_for_kind(self) -> "OperationSpec":
        if self.kind.needs_dest and self.dest is None:
            raise ValueError(f"{self.kind.value} requires 'dest'")
        if not self.kind.needs_dest and self.dest is not None:
            raise ValueError(f"{self.kind.value} does not take 'dest'")
        if self.kind.needs_payload and self.content is None:
            raise ValueError(f"{self.kind.value} requires 'content'")
        if not self.kind.needs_payload and self.content is not None:
            raise ValueError(f"{self.kind.value} does not take 'content'")
        if self.content is not None and self.encoding == "base64":
            try:
                base64.b64decode(self.content, validate=True)
            except binascii.Error as exc:
                raise ValueError(f"content is not valid base64: {exc}") from exc
        return self

    @property
    def payload(self) -> bytes:
        """Decoded payload bytes (empty when the kind carries none)."""
        if self.content is None:
            return b""
        if self.encoding == "base64":
            return base64.b64decode(self.content)
        return self.content.encode("utf-8")

    @field_serializer("path", "dest")
    def serialize_paths(self, path: Path | None) -> str | None:
        """Serialize Path to string for JSON."""
        return str(path) if path is not None else None


class Plan(BaseModel):
    """An ordered list of operations applied as one transaction.

    Attributes:
        plan_id: Identifier used in logs and the journal
        temp_dir: Optional backup location overriding configuration
        operations: Operations in execution order
    """

    plan_id: str = Field(min_length=1)
    temp_dir: Path | None = None
    operations: list[OperationSpec] = Field(min_length=1)

    @field_serializer("temp_dir")
    def serialize_temp_dir(self, path: Path | None) -> str | None:
        """Serialize Path to string for JSON."""
        return str(path) if path is not None else None


ApplyStatus = Literal["committed", "failed", "rolled_back", "rollback_failed"]


class ApplyResult(BaseModel):
    """Outcome of applying a plan.

    Attributes:
        plan_id: Plan identifier
        transaction_id: Identifier of the transaction run
        status: ``committed`` when every operation ran, ``failed`` when
            execution stopped and no rollback was attempted, ``rolled_back``
            or ``rollback_failed`` after an automatic rollback
        total_operations: Number of operations in the plan
        execution_count: Operations whose execute was attempted
        failed_index: Index of the operation that failed to execute
        rollback_failed_index: Index of the operation that failed to roll back
        error: Human-readable error message
        journal_path: Journal file, when journaling was enabled
    """

    plan_id: str
    transaction_id: str
    status: ApplyStatus
    total_operations: int = Field(ge=0)
    execution_count: int = Field(ge=0)
    failed_index: int | None = None
    rollback_failed_index: int | None = None
    error: str | None = None
    journal_path: Path | None = None

    @model_validator(mode="after")
    def validate_bounds(self) -> "ApplyResult":
        if self.execution_count > self.total_operations:
            raise ValueError("execution_count cannot exceed total_operations")
        return self

    @field_serializer("journal_path")
    def serialize_journal_path(self, path: Path | None) -> str | None:
        """Serialize Path to string for JSON."""
        return str(path) if path is not None else None
