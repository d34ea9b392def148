"""Router exports."""

from .batches import router as batches_router
from .generation import router as generation_router
from .projects import router as projects_router
from .segments import router as segments_router

__all__ = ["batches_router", "generation_router", "projects_router", "segments_router"]
