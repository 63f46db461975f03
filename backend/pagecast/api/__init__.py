# backend/pagecast/api/__init__.py
from .documents import router as documents_router
from .jobs import router as jobs_router

__all__ = ["documents_router", "jobs_router"]
