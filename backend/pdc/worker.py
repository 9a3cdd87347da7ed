"""
PDC Background Worker.

This process runs outside the FastAPI web server and executes the jobs the
API enqueues in the ``jobs`` table:
- `processBulkUpload` (bulk upload task pending -> in_progress -> completed/failed)

Run locally:
  cd backend
  python -m pdc.worker
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdc.database import get_session_factory
from pdc.models.db.job import Job
from pdc.services.bulk_upload_service import BulkUploadService
from pdc.services.job_queue import JobQueue
from pdc.tasks import TASKS, TIMEOUT_HANDLERS

logger = logging.getLogger(__name__)


def _truthy(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class PdcWorker:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        storage: Any = None,
    ) -> None:
        self.worker_id = os.getenv("PDC_WORKER_ID") or str(uuid.uuid4())
        self.poll_interval_seconds = _get_float_env("PDC_WORKER_POLL_INTERVAL_SECONDS", 5.0)
        self.bulk_upload_timeout_seconds = _get_int_env("PDC_BULK_UPLOAD_TIMEOUT_SECONDS", 60 * 60)
        self.stale_task_seconds = _get_int_env("PDC_STALE_TASK_SECONDS", 2 * 60 * 60)
        self.session_factory = session_factory
        self.storage = storage
        self._stop_event = asyncio.Event()

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        if self.session_factory is None:
            self.session_factory = get_session_factory()
        return self.session_factory

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        logger.info(
            "Worker starting",
            extra={
                "worker_id": self.worker_id,
                "poll_interval_seconds": self.poll_interval_seconds,
                "bulk_upload_timeout_seconds": self.bulk_upload_timeout_seconds,
            },
        )

        while not self._stop_event.is_set():
            did_work = False

            try:
                did_work = await self.process_one_job()
                if not did_work:
                    await self.fail_stale_tasks()
            except Exception as e:
                logger.exception(f"Worker loop error: {e}")

            if not did_work:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval_seconds)
                except asyncio.TimeoutError:
                    pass

        logger.info("Worker stopping", extra={"worker_id": self.worker_id})

    async def _claim(self) -> Optional[Job]:
        async with self._sessions()() as db:
            job = await JobQueue.claim_next(db, self.worker_id)
            await db.commit()
            return job

    async def _settle(self, job_id: int, error: Optional[str] = None) -> None:
        async with self._sessions()() as db:
            if error is None:
                await JobQueue.complete(db, job_id)
            else:
                await JobQueue.fail(db, job_id, error)
            await db.commit()

    async def process_one_job(self) -> bool:
        """Claim and run a single job.  Returns ``False`` when the queue is empty."""
        job = await self._claim()
        if job is None:
            return False

        job_id = job.id
        task_identifier = job.task_identifier
        payload = job.payload
        log_extra = {
            "worker_id": self.worker_id,
            "job_id": job_id,
            "task_identifier": task_identifier,
        }

        handler = TASKS.get(task_identifier)
        if handler is None:
            logger.error("No handler registered for job", extra=log_extra)
            await self._settle(job_id, error=f"Unknown task identifier: {task_identifier}")
            return True

        logger.info("Processing job", extra=log_extra)
        try:
            await asyncio.wait_for(
                handler(payload, session_factory=self._sessions(), storage=self.storage),
                timeout=self.bulk_upload_timeout_seconds,
            )
        except asyncio.TimeoutError:
            message = f"Job timed out after {self.bulk_upload_timeout_seconds} seconds"
            logger.error(message, extra=log_extra)
            on_timeout = TIMEOUT_HANDLERS.get(task_identifier)
            if on_timeout is not None:
                await on_timeout(payload, session_factory=self._sessions())
            await self._settle(job_id, error=message)
        except Exception as e:
            logger.exception("Job raised an unexpected error", extra=log_extra)
            await self._settle(job_id, error=str(e))
        except BaseException as e:
            # Includes CancelledError which is not an Exception.
            await self._settle(job_id, error=str(e) or type(e).__name__)
            raise
        else:
            await self._settle(job_id)
        return True

    async def fail_stale_tasks(self) -> list[int]:
        """Fail bulk uploads left ``in_progress`` by a worker that went away."""
        older_than = datetime.now(timezone.utc) - timedelta(seconds=self.stale_task_seconds)
        async with self._sessions()() as db:
            stale_ids = await BulkUploadService.fail_stale_in_progress(db, older_than)
            await db.commit()
        return stale_ids


def build_health_app(worker: PdcWorker) -> FastAPI:
    """Minimal app so platform health checks can reach the worker process."""
    app = FastAPI(title="PDC Worker", version="1.0.0")

    @app.get("/api/v1/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "role": "worker", "worker_id": worker.worker_id}

    return app


async def _run_with_health_server(worker: PdcWorker, port: int) -> None:
    server = uvicorn.Server(
        uvicorn.Config(build_health_app(worker), host="0.0.0.0", port=port, log_level="info", loop="asyncio")
    )
    finished, unfinished = await asyncio.wait(
        {asyncio.create_task(server.serve()), asyncio.create_task(worker.run())},
        return_when=asyncio.FIRST_COMPLETED,
    )
    server.should_exit = True
    worker.request_stop()
    for task in unfinished:
        task.cancel()
    for task in finished:
        task.result()


async def _main() -> None:
    load_dotenv(os.getenv("PDC_DOTENV_PATH", ".env"))

    worker = PdcWorker()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.request_stop)
        except NotImplementedError:
            signal.signal(sig, lambda *_: worker.request_stop())

    port_env = os.getenv("PORT")
    if _truthy(os.getenv("PDC_WORKER_HEALTH_SERVER", "true" if port_env else "false")):
        await _run_with_health_server(worker, int(port_env or "8000"))
    else:
        await worker.run()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(_main())
