# job store + runner convenience exports
from .jobs import InvalidJobTransition, Job, JobRegistry, JobStatus
from .runner import JobRunner, run_job

__all__ = [
    "Job", "JobStatus", "JobRegistry", "InvalidJobTransition",
    "JobRunner", "run_job",
]
