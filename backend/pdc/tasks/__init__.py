"""Worker task registry.

Maps queue task identifiers to the coroutine functions that handle them.
"""

from pdc.services.job_queue import PROCESS_BULK_UPLOAD_TASK
from pdc.tasks.process_bulk_upload import (
    fail_bulk_upload_after_timeout,
    process_bulk_upload_task,
)

TASKS = {
    PROCESS_BULK_UPLOAD_TASK: process_bulk_upload_task,
}

TIMEOUT_HANDLERS = {
    PROCESS_BULK_UPLOAD_TASK: fail_bulk_upload_after_timeout,
}

__all__ = ["TASKS", "TIMEOUT_HANDLERS", "process_bulk_upload_task"]
