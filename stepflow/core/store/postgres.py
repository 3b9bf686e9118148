# stepflow/core/store/postgres.py
from __future__ import annotations

import hashlib
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

from psycopg import Error as PsycopgError
from sqlalchemy import Select, delete, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from stepflow.core.errors import PersistenceError
from stepflow.core.logging import get_logger
from stepflow.core.models.database import PostgresConfig
from stepflow.core.models.records import Result, Task, Workflow
from stepflow.core.models.workflow_pg import (
    Base,
    ResultModel,
    TaskModel,
    WorkflowModel,
    _utcnow,
)
from stepflow.core.store.base import WorkflowStore
from stepflow.core.types.status import TaskStatus
from stepflow.core.utils.db import is_retryable_connection_error
from stepflow.core.utils.url import mask_database_url


def next_queued_task_stmt() -> Select[tuple[TaskModel]]:
    """
    Query for the next task to run.

    Oldest workflow first; within a workflow, lowest step number first.
    The workflow id breaks ties between workflows created at the same instant.
    """
    return (
        select(TaskModel)
        .join(WorkflowModel, WorkflowModel.id == TaskModel.workflow_id)
        .where(TaskModel.status == TaskStatus.QUEUED)
        .order_by(
            WorkflowModel.created_at.asc(),
            WorkflowModel.id.asc(),
            TaskModel.step_number.asc(),
        )
        .limit(1)
    )


def _result_from_row(row: ResultModel) -> Result:
    return Result(task_id=row.task_id, data=row.data, error=row.error, id=row.id)


def _task_from_row(
    row: TaskModel,
    result: Optional[Result],
    dependency_ids: list[str],
) -> Task:
    return Task(
        id=row.id,
        client_id=row.client_id,
        workflow_id=row.workflow_id,
        task_type=row.task_type,
        step_number=row.step_number,
        status=row.status,
        progress=row.progress,
        result=result,
        consumer_id=row.consumer_id,
        dependency_ids=dependency_ids,
    )


def _workflow_from_row(row: WorkflowModel, tasks: list[Task]) -> Workflow:
    return Workflow(
        id=row.id,
        client_id=row.client_id,
        name=row.name,
        input=row.input,
        status=row.status,
        final_result=row.final_result,
        created_at=row.created_at,
        tasks=tasks,
    )


class PostgresStore(WorkflowStore):
    """
    WorkflowStore backed by PostgreSQL through SQLAlchemy's async engine.

    Every public method runs in its own session and commits before
    returning. Driver and SQLAlchemy errors are re-raised as
    PersistenceError; connection failures are flagged `retryable`.
    """

    def __init__(self, config: PostgresConfig):
        self.config = config
        self.logger = get_logger('store')

        engine_cfg = self.config.model_dump(exclude={'database_url'}, exclude_none=True)
        self.async_engine = create_async_engine(self.config.database_url, **engine_cfg)
        self.session_factory = async_sessionmaker(
            self.async_engine, expire_on_commit=False
        )
        self._initialized = False

        self.logger.info(
            f'PostgresStore initialized ({mask_database_url(self.config.database_url)})'
        )

    def _schema_advisory_key(self) -> int:
        """
        Compute a stable 64-bit advisory lock key for schema initialization.

        Derived from the database URL so that different clusters do not
        contend on the same key.
        """
        basis = self.config.database_url.encode('utf-8', errors='ignore')
        h = hashlib.sha256(b'stepflow-schema:' + basis).digest()
        return int.from_bytes(h[:8], byteorder='big', signed=True)

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self.async_engine.begin() as conn:
            # Serialize DDL across processes sharing the database
            await conn.execute(
                text('SELECT pg_advisory_xact_lock(CAST(:key AS BIGINT))'),
                {'key': self._schema_advisory_key()},
            )
            await conn.run_sync(Base.metadata.create_all)
        self._initialized = True

    async def ensure_schema_initialized(self) -> None:
        """
        Create the stepflow tables if they do not exist.

        Safe to call multiple times and from multiple processes.
        """
        try:
            await self._ensure_initialized()
        except (SQLAlchemyError, PsycopgError) as exc:
            raise self._wrap('ensure_schema_initialized', exc) from exc

    def _wrap(self, operation: str, exc: BaseException) -> PersistenceError:
        retryable = is_retryable_connection_error(exc)
        self.logger.error(
            f'Store operation {operation} failed (retryable={retryable}): {exc}'
        )
        return PersistenceError(
            message=f'store operation {operation!r} failed',
            notes=[f'{type(exc).__name__}: {exc}'],
            help_text='check database connectivity and schema' if retryable else None,
            retryable=retryable,
        )

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            await self._ensure_initialized()
            async with self.session_factory() as session:
                yield session
        except (SQLAlchemyError, PsycopgError) as exc:
            raise self._wrap(operation, exc) from exc

    async def _hydrate_tasks(
        self,
        session: AsyncSession,
        rows: Sequence[TaskModel],
    ) -> list[Task]:
        """Attach results and dependency ids to task rows, keeping row order."""
        ids = [row.id for row in rows]
        if not ids:
            return []

        result_rows = (
            await session.scalars(
                select(ResultModel).where(ResultModel.task_id.in_(ids))
            )
        ).all()
        results = {r.task_id: _result_from_row(r) for r in result_rows}

        producer_rows = (
            await session.execute(
                select(TaskModel.id, TaskModel.consumer_id)
                .where(TaskModel.consumer_id.in_(ids))
                .order_by(TaskModel.step_number.asc())
            )
        ).all()
        dependencies: dict[str, list[str]] = {}
        for producer_id, consumer_id in producer_rows:
            dependencies.setdefault(consumer_id, []).append(producer_id)

        return [
            _task_from_row(row, results.get(row.id), dependencies.get(row.id, []))
            for row in rows
        ]

    # ----------------- writes -----------------

    async def add_workflow(self, workflow: Workflow) -> Workflow:
        async with self._session('add_workflow') as session:
            row = WorkflowModel(
                id=workflow.id,
                name=workflow.name,
                client_id=workflow.client_id,
                status=workflow.status,
                input=workflow.input,
                final_result=workflow.final_result,
                created_at=workflow.created_at or _utcnow(),
            )
            session.add(row)
            await session.commit()
            return _workflow_from_row(row, [])

    async def add_tasks(self, tasks: Sequence[Task]) -> None:
        if not tasks:
            return
        async with self._session('add_tasks') as session:
            # Consumer links are written after every row exists
            session.add_all(
                TaskModel(
                    id=task.id,
                    client_id=task.client_id,
                    workflow_id=task.workflow_id,
                    status=task.status,
                    task_type=task.task_type,
                    step_number=task.step_number,
                    progress=task.progress,
                    consumer_id=None,
                )
                for task in tasks
            )
            await session.flush()
            for task in tasks:
                if task.consumer_id is not None:
                    await session.execute(
                        update(TaskModel)
                        .where(TaskModel.id == task.id)
                        .values(consumer_id=task.consumer_id)
                    )
            await session.commit()

    async def set_dependencies(self, consumer: Task, producers: Sequence[Task]) -> None:
        producer_ids = [producer.id for producer in producers]
        async with self._session('set_dependencies') as session:
            unlink = update(TaskModel).where(TaskModel.consumer_id == consumer.id)
            if producer_ids:
                unlink = unlink.where(TaskModel.id.not_in(producer_ids))
            await session.execute(unlink.values(consumer_id=None))
            if producer_ids:
                await session.execute(
                    update(TaskModel)
                    .where(TaskModel.id.in_(producer_ids))
                    .values(consumer_id=consumer.id)
                )
            await session.commit()

        for producer in producers:
            producer.consumer_id = consumer.id
        consumer.dependency_ids = [
            p.id for p in sorted(producers, key=lambda p: p.step_number)
        ]

    async def save_task(self, task: Task) -> None:
        async with self._session('save_task') as session:
            res: Any = await session.execute(
                update(TaskModel)
                .where(TaskModel.id == task.id)
                .values(status=task.status, progress=task.progress)
            )
            if res.rowcount == 0:
                raise PersistenceError(message=f'task {task.id} does not exist')
            await session.commit()

    async def save_result(self, result: Result) -> None:
        async with self._session('save_result') as session:
            await session.execute(
                delete(ResultModel).where(ResultModel.task_id == result.task_id)
            )
            session.add(
                ResultModel(
                    id=result.id,
                    task_id=result.task_id,
                    data=result.data,
                    error=result.error,
                )
            )
            await session.commit()

    async def save_workflow(self, workflow: Workflow) -> None:
        async with self._session('save_workflow') as session:
            res: Any = await session.execute(
                update(WorkflowModel)
                .where(WorkflowModel.id == workflow.id)
                .values(status=workflow.status, final_result=workflow.final_result)
            )
            if res.rowcount == 0:
                raise PersistenceError(message=f'workflow {workflow.id} does not exist')
            await session.commit()

    # ----------------- reads -----------------

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        async with self._session('get_workflow') as session:
            row = await session.get(WorkflowModel, workflow_id)
            if row is None:
                return None
            task_rows = (
                await session.scalars(
                    select(TaskModel)
                    .where(TaskModel.workflow_id == workflow_id)
                    .order_by(TaskModel.step_number.asc())
                )
            ).all()
            return _workflow_from_row(row, await self._hydrate_tasks(session, task_rows))

    async def get_task(self, task_id: str) -> Optional[Task]:
        async with self._session('get_task') as session:
            row = await session.get(TaskModel, task_id)
            if row is None:
                return None
            return (await self._hydrate_tasks(session, [row]))[0]

    async def get_dependencies(self, task_id: str) -> list[Task]:
        async with self._session('get_dependencies') as session:
            rows = (
                await session.scalars(
                    select(TaskModel)
                    .where(TaskModel.consumer_id == task_id)
                    .order_by(TaskModel.step_number.asc())
                )
            ).all()
            return await self._hydrate_tasks(session, rows)

    async def claim_next_task(self) -> Optional[Task]:
        async with self._session('claim_next_task') as session:
            row = (await session.scalars(next_queued_task_stmt())).first()
            if row is None:
                return None
            return (await self._hydrate_tasks(session, [row]))[0]

    async def close(self) -> None:
        await self.async_engine.dispose()
