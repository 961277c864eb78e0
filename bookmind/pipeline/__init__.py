"""Background extraction pipeline: job queue, job processor and progress tracking."""

from bookmind.pipeline.extraction_job import ExtractionJobProcessor
from bookmind.pipeline.job_queue import JobQueue
from bookmind.pipeline.progress_tracker import ProgressTracker

__all__ = [
    "ExtractionJobProcessor",
    "JobQueue",
    "ProgressTracker",
]
