"""
Job progress records keyed by job id.

JobStore is the interface the job controller writes to and a polling layer reads from.
InMemoryJobStore keeps records for the life of the process only.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass

import config


@dataclass
class JobProgress:
    percent: int = 0
    status: str = ""
    output: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


class JobStore(ABC):
    @abstractmethod
    def get(self, job_id: str) -> JobProgress | None:
        pass

    @abstractmethod
    def set(self, job_id: str, progress: JobProgress) -> None:
        pass

    @abstractmethod
    def delete(self, job_id: str) -> None:
        pass

    def update(self, job_id: str, percent: int, status: str, output: str | None = None,
               error: str | None = None) -> JobProgress:
        percent = int(max(0, min(100, percent)))
        previous = self.get(job_id)
        if previous is not None and percent < previous.percent:
            # Percent never goes backwards; the status text still updates
            percent = previous.percent
        record = JobProgress(percent=percent, status=status, output=output, error=error)
        self.set(job_id, record)
        print(f"[JOB][{job_id}] {record.percent}% {status}" + (f" ({error})" if error else ""))
        return record

    def schedule_delete(self, job_id: str, delay: float | None = None) -> threading.Timer:
        """Delete the record after `delay` seconds so a poller can still read the terminal state."""
        delay = config.PROGRESS_DELETE_DELAY if delay is None else delay
        timer = threading.Timer(delay, self.delete, args=(job_id,))
        timer.daemon = True
        timer.start()
        return timer


class InMemoryJobStore(JobStore):
    """Plain dict; single writer per job id, so no lock."""

    def __init__(self):
        self._records: dict[str, JobProgress] = {}

    def get(self, job_id: str) -> JobProgress | None:
        return self._records.get(job_id)

    def set(self, job_id: str, progress: JobProgress) -> None:
        self._records[job_id] = progress

    def delete(self, job_id: str) -> None:
        self._records.pop(job_id, None)

    def __contains__(self, job_id) -> bool:
        return job_id in self._records

    def __len__(self) -> int:
        return len(self._records)
