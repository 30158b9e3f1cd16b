from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from conftest import ScriptedLLM, fragment_json
from examgen.config import Settings
from examgen.generation import LLMStatus
from examgen.main import app
from examgen.services.exam import ExamService, get_exam_service

OPEN_OPTIONS = json.dumps({"openQuestions": True, "questionsPerSection": 3})
THREE_PARAGRAPHS = (
    "Photosynthesis converts light energy into chemical energy.\n\n"
    "Chlorophyll absorbs mostly blue and red light.\n\n"
    "Oxygen is released as a by-product."
)


def _three_open_questions(system: str, user: str) -> str:
    return json.dumps(
        {
            "title": "מבחן חלק 1",
            "sections": [
                {
                    "title": "שאלות פתוחות",
                    "instructions": "ענו על השאלות הבאות",
                    "questions": [
                        {"text": f"שאלה {number}", "type": "open-ended", "points": 30}
                        for number in range(1, 4)
                    ],
                }
            ],
        },
        ensure_ascii=False,
    )


@pytest.fixture
def make_client(settings: Settings) -> Iterator:
    def _make(responder, **overrides) -> tuple[TestClient, ScriptedLLM, ExamService]:
        llm = ScriptedLLM(responder)
        service = ExamService(settings=replace(settings, **overrides), llm=llm)
        app.dependency_overrides[get_exam_service] = lambda: service
        return TestClient(app), llm, service

    yield _make
    app.dependency_overrides.clear()


def _uploads(settings: Settings) -> list[Path]:
    directory = Path(settings.upload_dir)
    return list(directory.iterdir()) if directory.exists() else []


def test_upload_generates_exam_from_text_file(make_client, settings: Settings) -> None:
    client, llm, _ = make_client(_three_open_questions)

    response = client.post(
        "/api/upload",
        files={"file": ("biology.txt", THREE_PARAGRAPHS.encode("utf-8"), "text/plain")},
        data={"options": OPEN_OPTIONS},
    )

    assert response.status_code == 200
    exam = response.json()
    assert exam["title"] == "מבחן"
    assert "failedChunks" not in exam
    assert len(exam["sections"]) == 1
    questions = exam["sections"][0]["questions"]
    assert len(questions) == 3
    assert all(question["points"] == 30 for question in questions)
    assert all(isinstance(question["points"], int) for question in questions)
    assert all(question["type"] == "open-ended" for question in questions)
    assert len(llm.calls) == 1
    assert "part 1 of 1" in llm.calls[0][1]
    assert "Oxygen is released as a by-product." in llm.calls[0][1]
    assert _uploads(settings) == []


def test_create_exam_wraps_result(make_client) -> None:
    client, _, _ = make_client(_three_open_questions)

    response = client.post(
        "/api/create-exam",
        files={"file": ("biology.txt", THREE_PARAGRAPHS.encode("utf-8"), "text/plain")},
        data={"options": OPEN_OPTIONS},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["exam"]["title"] == "מבחן"


def test_large_document_is_split_and_merged_in_order(make_client) -> None:
    # 72 characters per paragraph -> 18 tokens, so each paragraph is its own chunk.
    paragraphs = [f"paragraph {index} " + "x" * 60 for index in range(3)]

    def responder(system: str, user: str) -> str:
        part = user.split("(part ", 1)[1].split(" ", 1)[0]
        return fragment_json(f"part {part}", f"question {part}")

    client, llm, _ = make_client(responder, max_tokens_per_chunk=20)

    response = client.post(
        "/api/upload",
        files={"file": ("long.txt", "\n\n".join(paragraphs).encode("utf-8"), "text/plain")},
        data={"options": OPEN_OPTIONS},
    )

    assert response.status_code == 200
    titles = [section["title"] for section in response.json()["sections"]]
    assert titles == ["part 1 section", "part 2 section", "part 3 section"]
    assert len(llm.calls) == 3


def test_unsupported_file_type_is_a_client_error(make_client, settings: Settings) -> None:
    client, llm, _ = make_client(_three_open_questions)

    response = client.post(
        "/api/upload",
        files={"file": ("notes.rtf", b"{\\rtf1 hello}", "application/rtf")},
        data={"options": OPEN_OPTIONS},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Unsupported file type", "details": "Unsupported file type: .rtf"}
    assert llm.calls == []
    assert _uploads(settings) == []


def test_invalid_options_json_is_rejected(make_client) -> None:
    client, _, _ = make_client(_three_open_questions)

    response = client.post(
        "/api/upload",
        files={"file": ("biology.txt", b"text", "text/plain")},
        data={"options": "{not json"},
    )

    assert response.status_code == 400
    assert response.json()["details"] == "Invalid JSON format in request body"


def test_options_without_question_types_are_rejected(make_client) -> None:
    client, _, _ = make_client(_three_open_questions)

    response = client.post(
        "/api/upload",
        files={"file": ("biology.txt", b"text", "text/plain")},
        data={"options": json.dumps({"questionsPerSection": 3})},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


def test_missing_file_is_rejected(make_client) -> None:
    client, _, _ = make_client(_three_open_questions)

    response = client.post("/api/upload", data={"options": OPEN_OPTIONS})

    assert response.status_code == 400
    assert response.json()["details"] == "No file uploaded"


def test_generation_failure_is_a_server_error(make_client) -> None:
    client, _, _ = make_client(lambda system, user: "I cannot help with that.")

    response = client.post(
        "/api/upload",
        files={"file": ("biology.txt", THREE_PARAGRAPHS.encode("utf-8"), "text/plain")},
        data={"options": OPEN_OPTIONS},
    )

    assert response.status_code == 500
    payload = response.json()
    assert payload["error"] == "Failed to generate exam"
    assert payload["failedChunks"] == [0]
    assert "Failed to parse AI response as JSON" in payload["details"]


def test_empty_document_is_an_extraction_failure(make_client) -> None:
    client, llm, _ = make_client(_three_open_questions)

    response = client.post(
        "/api/upload",
        files={"file": ("empty.txt", b"  \n\n ", "text/plain")},
        data={"options": OPEN_OPTIONS},
    )

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to extract text"
    assert llm.calls == []


def test_stored_file_flow(make_client, settings: Settings) -> None:
    def responder(system: str, user: str) -> str:
        if '"description"' in user:
            return '```json\n{"title": "פוטוסינתזה", "description": "מבחן על פוטוסינתזה"}\n```'
        return _three_open_questions(system, user)

    client, _, _ = make_client(responder)

    stored = client.post(
        "/api/files",
        files={"file": ("biology.txt", THREE_PARAGRAPHS.encode("utf-8"), "text/plain")},
    )
    assert stored.status_code == 200
    file_id = stored.json()["fileId"]
    assert len(_uploads(settings)) == 1

    metadata = client.post("/api/generate-alias", json={"fileId": file_id})
    assert metadata.status_code == 200
    assert metadata.json() == {"title": "פוטוסינתזה", "description": "מבחן על פוטוסינתזה"}

    created = client.post("/api/create-exam", data={"fileId": file_id, "options": OPEN_OPTIONS})
    assert created.status_code == 200
    assert created.json()["exam"]["sections"][0]["questions"][0]["text"] == "שאלה 1"
    assert _uploads(settings) == []

    reused = client.post("/api/create-exam", data={"fileId": file_id, "options": OPEN_OPTIONS})
    assert reused.status_code == 404
    assert reused.json()["error"] == "Unknown file"


def test_generate_alias_from_content(make_client) -> None:
    client, llm, _ = make_client(lambda system, user: '{"alias": "מבחן בביולוגיה"}')

    response = client.post("/api/generate-alias", json={"content": "שאלות על התא"})

    assert response.status_code == 200
    assert response.json() == {"alias": "מבחן בביולוגיה"}
    assert "שאלות על התא" in llm.calls[0][1]


def test_generate_alias_requires_content(make_client) -> None:
    client, _, _ = make_client(lambda system, user: "unused")

    response = client.post("/api/generate-alias", json={"content": "   "})

    assert response.status_code == 400


def test_evaluate_scores_choice_questions_locally(make_client) -> None:
    client, llm, _ = make_client(lambda system, user: "unused")

    response = client.post(
        "/api/evaluate",
        json={
            "question": {
                "id": "q1",
                "text": "Which gas is released?",
                "type": "multiple-choice",
                "points": 20,
                "answers": ["Oxygen", "Nitrogen", "Water vapour", "Helium"],
                "correctAnswers": ["Oxygen", "Water vapour"],
            },
            "answer": ["Oxygen"],
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["score"] == 50
    assert payload["correctAnswer"] == ["Oxygen", "Water vapour"]
    assert llm.calls == []


def test_evaluate_open_question_uses_model(make_client) -> None:
    client, llm, _ = make_client(
        lambda system, user: '{"score": 80, "feedback": "טוב מאוד", "correctAnswer": "אור הופך לאנרגיה"}'
    )

    response = client.post(
        "/api/evaluate",
        json={
            "question": {"text": "Explain photosynthesis", "type": "open-ended", "points": 30},
            "answer": "Light becomes sugar",
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "score": 80,
        "feedback": "טוב מאוד",
        "correctAnswer": "אור הופך לאנרגיה",
    }
    assert "Student answer: Light becomes sugar" in llm.calls[0][1]


def test_evaluate_forces_single_choice_to_all_or_nothing(make_client) -> None:
    client, _, _ = make_client(
        lambda system, user: '{"score": 50, "feedback": "חלקית נכון", "correctAnswer": "Oxygen"}'
    )

    response = client.post(
        "/api/evaluate",
        json={
            "question": {"text": "Which gas?", "type": "single-choice", "points": 10},
            "answer": "Nitrogen",
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["score"] == 0
    assert payload["feedback"] == "תשובה שגויה. חלקית נכון"


def test_evaluate_rejects_empty_answer(make_client) -> None:
    client, _, _ = make_client(lambda system, user: "unused")

    response = client.post(
        "/api/evaluate",
        json={"question": {"text": "q", "type": "open-ended"}, "answer": "  "},
    )

    assert response.status_code == 400


def test_evaluate_rejects_single_choice_with_several_correct_answers(make_client) -> None:
    client, llm, _ = make_client(lambda system, user: "unused")

    response = client.post(
        "/api/evaluate",
        json={
            "question": {
                "text": "Which gas?",
                "type": "single-choice",
                "points": 10,
                "correctAnswers": ["Oxygen", "Nitrogen"],
            },
            "answer": "Oxygen",
        },
    )

    assert response.status_code == 400
    payload = response.json()
    assert payload["error"] == "Invalid request"
    assert "exactly one correct answer" in payload["details"]
    assert llm.calls == []


def test_unexpected_errors_still_answer_with_error_body(
    make_client, monkeypatch: pytest.MonkeyPatch
) -> None:
    _, _, service = make_client(lambda system, user: "unused")

    async def broken_evaluate(question, answer):  # noqa: ANN001
        raise ValueError("scoring table is corrupt")

    monkeypatch.setattr(service, "evaluate", broken_evaluate)
    client = TestClient(app, raise_server_exceptions=False)

    response = client.post(
        "/api/evaluate",
        json={"question": {"text": "q", "type": "open-ended"}, "answer": "a"},
    )

    assert response.status_code == 500
    assert response.json() == {
        "error": "Internal server error",
        "details": "scoring table is corrupt",
    }


def test_healthz_reflects_model_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    client = TestClient(app)

    monkeypatch.setattr(
        "examgen.main.get_llm_status",
        lambda: LLMStatus(configured=False, model_name="deepseek-chat", error="No API key"),
    )
    unhealthy = client.get("/healthz")
    assert unhealthy.status_code == 503
    assert unhealthy.json()["detail"] == "No API key"

    monkeypatch.setattr(
        "examgen.main.get_llm_status",
        lambda: LLMStatus(configured=True, model_name="deepseek-chat", base_url="https://api.deepseek.com"),
    )
    assert client.get("/healthz").text == "ok"
    assert client.get("/healthz/model").json() == {
        "configured": True,
        "name": "deepseek-chat",
        "base_url": "https://api.deepseek.com",
    }


def test_read_root_returns_ok() -> None:
    response = TestClient(app).get("/")

    assert response.status_code == 200
    assert response.text == "ok"
