"""
Worker module.
Contains the consumer process and the job handler registry.
"""

from job_bridge.worker.handlers import execute_job, register_handler
from job_bridge.worker.main import Worker, run

__all__ = ["Worker", "execute_job", "register_handler", "run"]
