"""API router exposing the exam generation endpoints."""
from __future__ import annotations

import json
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from examgen.errors import (
    ExamGenError,
    InvalidRequest,
    OrchestrationFailure,
    UnknownUpload,
    UnsupportedFormat,
)
from examgen.models import Evaluation, EvaluationQuestion, ExamDocument, ExamMetadata, GenerationOptions
from examgen.services.exam import ExamService, get_exam_service

router = APIRouter(prefix="/api", tags=["exam"])

_STATUS_BY_ERROR: tuple[tuple[type[ExamGenError], int], ...] = (
    (InvalidRequest, 400),
    (UnsupportedFormat, 400),
    (UnknownUpload, 404),
)


def status_for_error(error: ExamGenError) -> int:
    """HTTP status for a pipeline error; anything unlisted is a server error."""

    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_body(error: ExamGenError) -> dict[str, object]:
    body: dict[str, object] = {"error": error.error, "details": error.details}
    if isinstance(error, OrchestrationFailure):
        body["failedChunks"] = error.failed_indices
    return body


class CreateExamResponse(BaseModel):
    success: bool
    exam: ExamDocument


class StoredFileResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(..., alias="fileId")


class AliasRequest(BaseModel):
    """Either raw exam ``content`` (alias) or a stored ``fileId`` (title and description)."""

    model_config = ConfigDict(populate_by_name=True)

    content: Optional[str] = None
    file_id: Optional[str] = Field(None, alias="fileId")


class AliasResponse(BaseModel):
    alias: str


class EvaluateRequest(BaseModel):
    question: EvaluationQuestion
    answer: Union[str, List[str]]


def _parse_options(raw: Optional[str]) -> GenerationOptions:
    if raw is None or not raw.strip():
        raise InvalidRequest("Missing 'options' form field")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidRequest("Invalid JSON format in request body") from exc
    try:
        return GenerationOptions.model_validate(data)
    except ValidationError as exc:
        raise InvalidRequest(f"Invalid generation options: {exc}") from exc


@router.post("/upload", response_model=ExamDocument, response_model_exclude_none=True)
async def upload_document(
    file: Optional[UploadFile] = File(None),
    options: Optional[str] = Form(None),
    service: ExamService = Depends(get_exam_service),
) -> ExamDocument:
    """Generate an exam from an uploaded document."""

    if file is None:
        raise InvalidRequest("No file uploaded")
    generation_options = _parse_options(options)
    return await service.create_exam_from_upload(file, generation_options)


@router.post("/create-exam", response_model=CreateExamResponse, response_model_exclude_none=True)
async def create_exam(
    file: Optional[UploadFile] = File(None),
    file_id: Optional[str] = Form(None, alias="fileId"),
    options: Optional[str] = Form(None),
    service: ExamService = Depends(get_exam_service),
) -> CreateExamResponse:
    """Generate an exam from an uploaded file or a previously stored ``fileId``."""

    generation_options = _parse_options(options)
    if file is not None:
        exam = await service.create_exam_from_upload(file, generation_options)
    elif file_id:
        exam = await service.create_exam_from_file_id(file_id, generation_options)
    else:
        raise InvalidRequest("No file uploaded")
    return CreateExamResponse(success=True, exam=exam)


@router.post("/files", response_model=StoredFileResponse)
async def store_file(
    file: Optional[UploadFile] = File(None),
    service: ExamService = Depends(get_exam_service),
) -> StoredFileResponse:
    """Keep a document for the two-step creation flow and return its ``fileId``."""

    if file is None:
        raise InvalidRequest("No file uploaded")
    return StoredFileResponse(file_id=await service.store_upload(file))


@router.post("/generate-alias", response_model=None)
async def generate_alias(
    request: AliasRequest,
    service: ExamService = Depends(get_exam_service),
) -> Union[AliasResponse, ExamMetadata]:
    if request.content and request.content.strip():
        return AliasResponse(alias=await service.generate_alias(request.content))
    if request.file_id:
        return await service.generate_metadata(request.file_id)
    raise InvalidRequest("Content is required")


@router.post("/evaluate", response_model=Evaluation, response_model_exclude_none=True)
async def evaluate_answer(
    request: EvaluateRequest,
    service: ExamService = Depends(get_exam_service),
) -> Evaluation:
    answer = request.answer
    if (isinstance(answer, str) and not answer.strip()) or (not isinstance(answer, str) and not answer):
        raise InvalidRequest("Missing required fields: answer")
    return await service.evaluate(request.question, answer)


__all__ = ["error_body", "router", "status_for_error"]
