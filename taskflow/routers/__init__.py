"""API routers package.

This package contains all FastAPI routers for the application.
Each router handles a specific domain of the API.
"""

from .notifications import router as notifications_router
from .project_messages import router as project_messages_router
from .tasks import router as tasks_router

__all__ = [
    "notifications_router",
    "project_messages_router",
    "tasks_router",
]
