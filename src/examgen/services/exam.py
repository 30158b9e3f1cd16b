from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Union

from fastapi import UploadFile

from examgen.chunker import split_text
from examgen.config import Settings, get_settings
from examgen.errors import ExtractionFailure, InvalidRequest
from examgen.extract import DocumentFormat, extract
from examgen.generation import LLM, GenerationClient, get_llm
from examgen.grading import score_closed_form
from examgen.models import (
    Chunk,
    Evaluation,
    EvaluationQuestion,
    ExamDocument,
    ExamMetadata,
    GenerationOptions,
    QuestionType,
)
from examgen.orchestrator import ChunkOrchestrator, RetryPolicy
from examgen.parser import parse_alias, parse_evaluation, parse_metadata
from examgen.prompt_builder import (
    build_alias_prompt,
    build_evaluation_prompt,
    build_metadata_prompt,
)
from examgen.storage import UploadStore, discard_file, file_extension, save_upload
from examgen.telemetry import emit_chunking_event, traced_duration

LOGGER = logging.getLogger(__name__)

INCORRECT_ANSWER_PREFIX = "תשובה שגויה."


class ExamService:
    """High level orchestration of the document-to-exam workflow."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        llm: LLM | None = None,
        upload_store: UploadStore | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.client = GenerationClient(llm or get_llm(), language=self.settings.exam_language)
        self.orchestrator = ChunkOrchestrator(
            self.client,
            retry_policy=RetryPolicy.from_settings(self.settings),
            allow_partial=self.settings.allow_partial,
        )
        self.uploads = upload_store or UploadStore(
            capacity=self.settings.upload_capacity,
            ttl_seconds=self.settings.upload_ttl_seconds,
        )
        self.upload_dir = Path(self.settings.upload_dir)

    async def _chunk_document(self, path: Path, extension: str) -> List[Chunk]:
        text = await extract(path, extension, doc_command=self.settings.doc_extractor)
        chunks = split_text(text, self.settings.max_tokens_per_chunk)
        emit_chunking_event(
            chars=len(text),
            chunks=len(chunks),
            max_tokens_per_chunk=self.settings.max_tokens_per_chunk,
        )
        if not chunks:
            raise ExtractionFailure(extension, "document contains no text")
        return chunks

    async def create_exam(
        self, path: Union[str, Path], extension: str, options: GenerationOptions
    ) -> ExamDocument:
        """Extract, chunk and generate an exam from the document at ``path``."""

        with traced_duration("exam.create", logger=LOGGER, extension=extension):
            chunks = await self._chunk_document(Path(path), extension)
            exam = await self.orchestrator.orchestrate(chunks, options)
        LOGGER.info("Generated exam with %s sections from %s chunks", len(exam.sections), len(chunks))
        return exam

    async def create_exam_from_upload(
        self, upload: UploadFile, options: GenerationOptions
    ) -> ExamDocument:
        """Generate an exam from a freshly uploaded file, discarding it afterwards."""

        extension = file_extension(upload.filename)
        DocumentFormat.from_extension(extension)
        destination = await save_upload(upload, self.upload_dir)
        try:
            return await self.create_exam(destination, extension, options)
        finally:
            discard_file(destination)

    async def create_exam_from_file_id(self, file_id: str, options: GenerationOptions) -> ExamDocument:
        """Generate an exam from a stored upload; the handle is consumed."""

        stored = self.uploads.pop(file_id)
        try:
            return await self.create_exam(stored.path, stored.extension, options)
        finally:
            discard_file(stored.path)

    async def store_upload(self, upload: UploadFile) -> str:
        """Keep an upload on disk for a later call and return its opaque id."""

        extension = file_extension(upload.filename)
        DocumentFormat.from_extension(extension)
        destination = await save_upload(upload, self.upload_dir)
        return self.uploads.put(destination, extension, upload.filename)

    async def generate_alias(self, content: str) -> str:
        prompt = build_alias_prompt(content, language=self.settings.exam_language)
        raw = await self.client.ask(prompt)
        return parse_alias(raw)

    async def generate_metadata(self, file_id: str) -> ExamMetadata:
        """Suggest a title and description for a stored upload (not consumed)."""

        stored = self.uploads.get(file_id)
        chunks = await self._chunk_document(stored.path, stored.extension)
        prompt = build_metadata_prompt(chunks[0].text, language=self.settings.exam_language)
        raw = await self.client.ask(prompt)
        return parse_metadata(raw)

    async def evaluate(
        self, question: EvaluationQuestion, answer: Union[str, List[str]]
    ) -> Evaluation:
        """Score an answer locally when possible, otherwise ask the model."""

        if question.type.is_choice and question.correct_answers:
            if question.type is QuestionType.SINGLE_CHOICE and len(question.correct_answers) != 1:
                raise InvalidRequest(
                    "single-choice question must have exactly one correct answer "
                    f"(got {len(question.correct_answers)})"
                )
            return score_closed_form(question.type, answer, question.correct_answers)

        prompt = build_evaluation_prompt(
            question.text,
            question.type,
            question.points,
            answer,
            language=self.settings.exam_language,
        )
        evaluation = parse_evaluation(await self.client.ask(prompt))
        if question.type is QuestionType.SINGLE_CHOICE and evaluation.score not in (0, 100):
            LOGGER.warning(
                "Model returned partial credit %s for single-choice question %s; scoring 0",
                evaluation.score,
                question.id,
            )
            evaluation = evaluation.model_copy(
                update={
                    "score": 0,
                    "feedback": f"{INCORRECT_ANSWER_PREFIX} {evaluation.feedback}",
                }
            )
        return evaluation


@lru_cache(maxsize=1)
def get_exam_service() -> ExamService:
    return ExamService()


__all__ = ["ExamService", "get_exam_service"]
