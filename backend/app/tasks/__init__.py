"""Background tasks."""

from app.tasks import cleanup

__all__ = ["cleanup"]
