"""
PostgreSQL job store.
Implements the storage contracts with SQLAlchemy asyncio sessions.
"""

import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, func, select, text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dnstest_queue.constants import Progress
from dnstest_queue.db.models import Job, ResultEntryRow, User
from dnstest_queue.db.store import JobStore, UserStore
from dnstest_queue.errors import InternalError, NotFoundError, ValidationError
from dnstest_queue.types.batch import BatchRow
from dnstest_queue.types.job import ClaimedJob, JobRecord, StalledJob
from dnstest_queue.types.results import ResultEntry

logger = logging.getLogger(__name__)

# Claim the most urgent queued job in a single statement. The inner SELECT
# locks the candidate row and skips rows locked by concurrent claimers, and the
# outer condition on progress rejects a row that was claimed meanwhile.
_CLAIM_SQL = """
    UPDATE jobs
    SET
        progress = :claimed,
        started_at = :now,
        updated_at = :now
    WHERE id = (
        SELECT id FROM jobs
        WHERE progress = :queued
        {queue_filter}
        ORDER BY priority DESC, id ASC
        LIMIT 1
        FOR UPDATE SKIP LOCKED
    )
    AND progress = :queued
    RETURNING id, hash_id, nb_retries
"""

CLAIM_ANY_QUEUE = text(_CLAIM_SQL.format(queue_filter=""))
CLAIM_ONE_QUEUE = text(_CLAIM_SQL.format(queue_filter="AND queue_label = :queue_label"))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_record(job: Job) -> JobRecord:
    return JobRecord(
        id=job.id,
        hash_id=job.hash_id,
        fingerprint=job.fingerprint,
        priority=job.priority,
        queue_label=job.queue_label,
        progress=job.progress,
        batch_id=job.batch_id,
        nb_retries=job.nb_retries,
        params=job.params,
        undelegated=job.undelegated,
        created_at=job.created_at,
        started_at=job.started_at,
        ended_at=job.ended_at,
        updated_at=job.updated_at,
        domain=job.domain,
    )


def _to_row(hash_id: str, entry: ResultEntry) -> dict[str, Any]:
    return {"hash_id": hash_id, **entry.model_dump(mode="json")}


def _to_entry(row: ResultEntryRow) -> ResultEntry:
    return ResultEntry(
        level=row.level,
        module=row.module,
        testcase=row.testcase,
        tag=row.tag,
        timestamp=row.timestamp,
        args=row.args,
    )


class _SessionMixin:
    """Opens one transaction per store operation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize the store with a session factory.

        Args:
            session_factory: Factory producing async database sessions.
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        """
        Yield a session committed on success and rolled back on failure.

        Raises:
            InternalError: If the database operation fails.
        """
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.exception("Storage operation failed")
                raise InternalError("Storage operation failed", {"reason": str(e)}) from e
            except Exception:
                await session.rollback()
                raise


class SqlJobStore(_SessionMixin, JobStore):
    """
    Job store backed by PostgreSQL.

    Implements atomic operations for:
    - Claiming with a conditional UPDATE over FOR UPDATE SKIP LOCKED
    - Retry, force end and finish as compare-and-set on nb_retries
    - Multi-row result entry inserts in one transaction
    """

    async def insert_job(
        self,
        hash_id: str,
        fingerprint: str,
        params: dict[str, Any],
        *,
        domain: str = "",
        priority: int,
        queue_label: int,
        batch_id: int | None = None,
        undelegated: bool = False,
    ) -> JobRecord:
        now = _utcnow()
        job = Job(
            hash_id=hash_id,
            fingerprint=fingerprint,
            domain=domain,
            params=params,
            priority=priority,
            queue_label=queue_label,
            batch_id=batch_id,
            undelegated=undelegated,
            progress=Progress.QUEUED,
            nb_retries=0,
            created_at=now,
            updated_at=now,
        )
        async with self._session() as session:
            session.add(job)
            await session.flush()
            record = _to_record(job)

        logger.info(
            "Created new job",
            extra={"hash_id": hash_id, "job_id": record.id, "queue_label": queue_label},
        )
        return record

    async def find_reusable(self, fingerprint: str, window_seconds: float) -> str | None:
        since = _utcnow() - timedelta(seconds=window_seconds)
        stmt = (
            select(Job.hash_id)
            .where(
                and_(
                    Job.fingerprint == fingerprint,
                    Job.created_at > since,
                )
            )
            .order_by(Job.id.desc())
            .limit(1)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def conditional_claim(self, queue_label: int | None = None) -> ClaimedJob | None:
        """
        Claim the next queued job.

        Highest priority first, lowest id among equal priorities.

        Args:
            queue_label: Optional queue partition filter.

        Returns:
            The claimed job identity or None if nothing is queued.
        """
        params: dict[str, Any] = {
            "claimed": int(Progress.CLAIMED),
            "queued": int(Progress.QUEUED),
            "now": _utcnow(),
        }
        sql = CLAIM_ANY_QUEUE
        if queue_label is not None:
            sql = CLAIM_ONE_QUEUE
            params["queue_label"] = queue_label

        async with self._session() as session:
            result = await session.execute(sql, params)
            row = result.first()

        if row is None:
            return None
        return ClaimedJob(id=row.id, hash_id=row.hash_id, nb_retries=row.nb_retries)

    async def set_progress(self, hash_id: str, value: int) -> bool:
        if not Progress.CLAIMED <= value <= Progress.FINISHED:
            raise ValidationError("Progress must be between 1 and 100", {"value": value})

        now = _utcnow()
        values: dict[str, Any] = {"progress": value, "updated_at": now}
        if value == Progress.CLAIMED:
            values["started_at"] = func.coalesce(Job.started_at, now)
        if value == Progress.FINISHED:
            values["ended_at"] = now

        stmt = (
            update(Job)
            .where(
                and_(
                    Job.hash_id == hash_id,
                    Job.progress <= value,
                    Job.progress < Progress.FINISHED,
                )
            )
            .values(**values)
            .returning(Job.id)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            if result.scalar_one_or_none() is not None:
                return True
            exists = await session.execute(select(Job.id).where(Job.hash_id == hash_id))
            if exists.scalar_one_or_none() is None:
                raise NotFoundError("Unknown job", {"hash_id": hash_id})
            return False

    async def get_job(self, hash_id: str) -> JobRecord | None:
        async with self._session() as session:
            result = await session.execute(select(Job).where(Job.hash_id == hash_id))
            job = result.scalar_one_or_none()
            return _to_record(job) if job is not None else None

    async def get_nb_retries(self, hash_id: str) -> int:
        async with self._session() as session:
            result = await session.execute(select(Job.nb_retries).where(Job.hash_id == hash_id))
            nb_retries = result.scalar_one_or_none()
        if nb_retries is None:
            raise NotFoundError("Unknown job", {"hash_id": hash_id})
        return nb_retries

    async def get_relative_start_time(self, hash_id: str) -> float:
        async with self._session() as session:
            result = await session.execute(select(Job.id, Job.started_at).where(Job.hash_id == hash_id))
            row = result.first()
        if row is None:
            raise NotFoundError("Unknown job", {"hash_id": hash_id})
        if row.started_at is None:
            return 0.0
        return (_utcnow() - row.started_at).total_seconds()

    async def list_stalled(
        self,
        queue_label: int | None,
        timeout_seconds: float,
        max_retries: int,
    ) -> Sequence[StalledJob]:
        deadline = _utcnow() - timedelta(seconds=timeout_seconds)
        filters = [
            Job.progress > Progress.QUEUED,
            Job.progress < Progress.FINISHED,
            Job.updated_at < deadline,
            Job.nb_retries <= max_retries,
        ]
        if queue_label is not None:
            filters.append(Job.queue_label == queue_label)

        stmt = (
            select(Job.hash_id, Job.nb_retries, Job.started_at)
            .where(and_(*filters))
            .order_by(Job.id.asc())
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [
                StalledJob(hash_id=row.hash_id, nb_retries=row.nb_retries, started_at=row.started_at)
                for row in result.all()
            ]

    def _running_with_retries(self, hash_id: str, expected_nb_retries: int) -> Any:
        return and_(
            Job.hash_id == hash_id,
            Job.progress > Progress.QUEUED,
            Job.progress < Progress.FINISHED,
            Job.nb_retries == expected_nb_retries,
        )

    async def schedule_for_retry(self, hash_id: str, expected_nb_retries: int) -> bool:
        stmt = (
            update(Job)
            .where(self._running_with_retries(hash_id, expected_nb_retries))
            .values(
                progress=Progress.QUEUED,
                nb_retries=Job.nb_retries + 1,
                started_at=None,
                updated_at=_utcnow(),
            )
            .returning(Job.id)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def force_end(
        self,
        hash_id: str,
        expected_nb_retries: int,
        entry: ResultEntry,
    ) -> bool:
        now = _utcnow()
        stmt = (
            update(Job)
            .where(self._running_with_retries(hash_id, expected_nb_retries))
            .values(progress=Progress.FINISHED, ended_at=now, updated_at=now)
            .returning(Job.id)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            if result.scalar_one_or_none() is None:
                return False
            await session.execute(insert(ResultEntryRow), [_to_row(hash_id, entry)])
            return True

    async def finish(
        self,
        hash_id: str,
        expected_nb_retries: int,
        entries: Sequence[ResultEntry],
    ) -> bool:
        now = _utcnow()
        stmt = (
            update(Job)
            .where(self._running_with_retries(hash_id, expected_nb_retries))
            .values(progress=Progress.FINISHED, ended_at=now, updated_at=now)
            .returning(Job.id)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            if result.scalar_one_or_none() is None:
                return False
            if entries:
                rows = [_to_row(hash_id, entry) for entry in entries]
                await session.execute(insert(ResultEntryRow), rows)
            return True

    async def insert_result_entry(self, hash_id: str, entry: ResultEntry) -> None:
        await self.insert_result_entries(hash_id, [entry])

    async def insert_result_entries(self, hash_id: str, entries: Sequence[ResultEntry]) -> None:
        if not entries:
            return
        rows = [_to_row(hash_id, entry) for entry in entries]
        try:
            async with self._session() as session:
                await session.execute(insert(ResultEntryRow), rows)
        except InternalError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise NotFoundError("Unknown job", {"hash_id": hash_id}) from e
            raise

    async def get_result_entries(self, hash_id: str) -> list[ResultEntry]:
        stmt = (
            select(ResultEntryRow)
            .where(ResultEntryRow.hash_id == hash_id)
            .order_by(ResultEntryRow.id.asc())
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_to_entry(row) for row in result.scalars().all()]

    async def batch_rows(self, batch_id: int) -> Sequence[BatchRow]:
        stmt = select(Job.hash_id, Job.progress).where(Job.batch_id == batch_id)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [BatchRow(hash_id=row.hash_id, progress=row.progress) for row in result.all()]

    async def queue_depth(self, queue_label: int | None = None) -> int:
        filters = [Job.progress == Progress.QUEUED]
        if queue_label is not None:
            filters.append(Job.queue_label == queue_label)

        stmt = select(func.count()).select_from(Job).where(and_(*filters))
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    async def history(
        self,
        domain: str,
        undelegated: bool | None = None,
        offset: int = 0,
        limit: int = 200,
    ) -> Sequence[JobRecord]:
        filters = [Job.domain == domain.lower(), Job.progress == Progress.FINISHED]
        if undelegated is not None:
            filters.append(Job.undelegated == undelegated)

        stmt = (
            select(Job)
            .where(and_(*filters))
            .order_by(Job.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_to_record(job) for job in result.scalars().all()]


class SqlUserStore(_SessionMixin, UserStore):
    """User store backed by PostgreSQL."""

    async def user_exists_in_db(self, username: str) -> bool:
        async with self._session() as session:
            result = await session.execute(select(User.id).where(User.username == username))
            return result.scalar_one_or_none() is not None

    async def add_api_user_to_db(self, username: str, api_key: str) -> bool:
        stmt = (
            insert(User)
            .values(username=username, api_key=api_key)
            .on_conflict_do_nothing(index_elements=["username"])
            .returning(User.id)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None
