"""Service layer coordinating extraction, generation and storage."""

from .exam import ExamService, get_exam_service

__all__ = ["ExamService", "get_exam_service"]
