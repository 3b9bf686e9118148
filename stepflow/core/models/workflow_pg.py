"""SQLAlchemy models for workflow persistence."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    Enum as SQLAlchemyEnum,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from stepflow.core.types.status import TaskStatus, WorkflowStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for PostgreSQL models"""

    pass


class WorkflowModel(Base):
    """
    SQLAlchemy model for workflow instances.

    - id: str # uuid4
    - name: str # name of the definition the workflow was built from
    - client_id: str # caller-supplied client identifier
    - status: WorkflowStatus # INITIAL, IN_PROGRESS, COMPLETED, FAILED
    - input: str # opaque input document, serialized as json, read-only
    - final_result: str # aggregated report, rewritten after every task run
    - created_at: datetime # creation time, primary key of cross-workflow ordering
    - updated_at: datetime # last aggregate recompute
    """

    __tablename__ = 'stepflow_workflows'

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    client_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[WorkflowStatus] = mapped_column(
        SQLAlchemyEnum(WorkflowStatus, native_enum=False),
        nullable=False,
        default=WorkflowStatus.INITIAL,
        index=True,
    )

    input: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    final_result: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text('NOW()'),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text('NOW()'),
        onupdate=_utcnow,
    )


class TaskModel(Base):
    """
    SQLAlchemy model for workflow tasks.

    A task's dependencies are not stored on the task itself: they are the
    tasks whose `consumer_id` points at it. This keeps the producer side
    single-valued (at most one consumer per task).
    """

    __tablename__ = 'stepflow_tasks'

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(255), nullable=False)
    workflow_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey('stepflow_workflows.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )

    status: Mapped[TaskStatus] = mapped_column(
        SQLAlchemyEnum(TaskStatus, native_enum=False),
        nullable=False,
        default=TaskStatus.QUEUED,
        index=True,
    )
    task_type: Mapped[str] = mapped_column(String(255), nullable=False)
    step_number: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=text('1'),
    )
    progress: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Downstream task depending on this one
    consumer_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey('stepflow_tasks.id', ondelete='SET NULL'),
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text('NOW()'),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text('NOW()'),
        onupdate=_utcnow,
    )

    __table_args__ = (
        UniqueConstraint(
            'workflow_id', 'step_number', name='uq_stepflow_task_step_number'
        ),
        Index('idx_stepflow_tasks_status_step', 'status', 'step_number'),
    )


class ResultModel(Base):
    """
    SQLAlchemy model for task results.

    One row per task; a new execution attempt replaces the previous row.
    """

    __tablename__ = 'stepflow_results'

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    task_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey('stepflow_tasks.id', ondelete='CASCADE'),
        nullable=False,
        unique=True,
    )

    # Serialized success payload / failure message
    data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
