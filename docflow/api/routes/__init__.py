"""API routers."""

from docflow.api.routes import jobs, tasks

__all__ = ["jobs", "tasks"]
