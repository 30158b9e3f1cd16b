"""HTTP routers for the exam generation service."""

from .exam import router

__all__ = ["router"]
