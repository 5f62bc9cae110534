# tests/test_question_supply.py
import json

import httpx
import pytest

from services import question_supply
from services.question_supply import (
    QuestionSupplyError,
    build_question_prompt,
    clean_json,
    competency_mode,
    fetch_question_batch,
    finalize_questions,
)


def raw_question(text="¿Qué debe hacer el docente?", correct="C", **extra):
    item = {
        "text": text,
        "context": "Un estudiante presenta dificultades.",
        "options": [{"id": k, "text": f"Opción {k}"} for k in "ABCD"],
        "correctOptionId": correct,
        "competency": "Competencias Pedagógicas",
        "normative": {"law": "Decreto 1421 de 2017", "article": "Art. 2.3.3.5.2.3.5", "explanation": "PIAR"},
    }
    item.update(extra)
    return item


class FakeAI:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.models = []

    async def __call__(self, prompt, system_prompt=None, model=None, max_tokens=None, temperature=0.7):
        self.models.append(model)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_clean_json_strips_fences_and_surrounding_text():
    raw = '```json\nAquí tienes:\n[{"a": 1}]\nSuerte\n```'
    assert json.loads(clean_json(raw)) == [{"a": 1}]


def test_finalize_fills_defaults_and_fresh_ids():
    item = raw_question()
    del item["context"]
    del item["normative"]
    questions = finalize_questions([item, raw_question()], 5)

    assert len(questions) == 2
    assert questions[0].id != questions[1].id
    assert questions[0].id.startswith("q-")
    assert questions[0].context == "Situación general aplicada al cargo."
    assert questions[0].bloomLevel == "APLICAR"
    assert questions[0].difficulty == "Media"
    assert questions[0].difficulty_analysis == "Pregunta de nivel estándar CNSC."
    assert questions[0].normative.law == "Marco normativo general"
    assert questions[0].normative.explanation == "Aplicación del debido proceso legal."


def test_finalize_skips_malformed_items():
    no_options = raw_question()
    del no_options["options"]
    wrong_answer = raw_question(correct="E")
    questions = finalize_questions([no_options, wrong_answer, raw_question(text="válida")], 5)
    assert [q.text for q in questions] == ["válida"]


def test_competency_mode_overrides():
    assert "LECTURA CRÍTICA" in competency_mode("Lectura Crítica", "Matemáticas")
    assert "MATEMÁTICO" in competency_mode("Razonamiento Cuantitativo", "N/A")
    assert "Física" in competency_mode("Conocimientos Específicos", "Ciencias Naturales - Física")
    assert "ENGLISH" in competency_mode("Conocimientos Específicos", "Idioma Extranjero Inglés")
    assert "ESTÁNDAR" in competency_mode(None, "N/A")


def test_prompt_uses_role_context():
    prompt = build_question_prompt("Rector", "N/A", "Gestión Financiera", 4)
    assert "4 preguntas" in prompt
    assert "Decreto 4791 de 2008" in prompt


async def test_generates_and_caches_questions(fake_db, monkeypatch):
    ai = FakeAI("```json\n" + json.dumps([raw_question(), raw_question(text="Otra")]) + "\n```")
    monkeypatch.setattr(question_supply, "call_ai_api", ai)

    questions = await fetch_question_batch("Docente de Aula", "Matemáticas", 2, "Competencias Pedagógicas")

    assert len(questions) == 2
    assert ai.models == ["grok-3"]
    cached = fake_db.questions_bank.docs
    assert len(cached) == 2
    assert cached[0]["role"] == "Docente de Aula"
    assert cached[0]["competency"] == "Competencias Pedagógicas"


async def test_serves_from_cache_when_enough(fake_db, monkeypatch):
    for i in range(3):
        await fake_db.questions_bank.insert_one(
            {"role": "Rector", "area": "N/A", "competency": None, "content": raw_question(text=f"cache {i}")}
        )
    ai = FakeAI()
    monkeypatch.setattr(question_supply, "call_ai_api", ai)

    questions = await fetch_question_batch("Rector", None, 2)

    assert len(questions) == 2
    assert all(q.text.startswith("cache") for q in questions)
    assert ai.models == []


async def test_tops_up_partial_cache_with_generation(fake_db, monkeypatch):
    await fake_db.questions_bank.insert_one(
        {"role": "Rector", "area": "N/A", "content": raw_question(text="cache")}
    )
    ai = FakeAI(json.dumps([raw_question(text="nueva")]))
    monkeypatch.setattr(question_supply, "call_ai_api", ai)

    questions = await fetch_question_batch("Rector", "N/A", 2)

    assert sorted(q.text for q in questions) == ["cache", "nueva"]


async def test_force_refresh_skips_cache(fake_db, monkeypatch):
    await fake_db.questions_bank.insert_one(
        {"role": "Rector", "area": "N/A", "content": raw_question(text="cache")}
    )
    ai = FakeAI(json.dumps([raw_question(text="nueva")]))
    monkeypatch.setattr(question_supply, "call_ai_api", ai)

    questions = await fetch_question_batch("Rector", "N/A", 1, force_refresh=True)

    assert [q.text for q in questions] == ["nueva"]


async def test_falls_back_to_second_model(fake_db, monkeypatch):
    ai = FakeAI("esto no es JSON", json.dumps([raw_question()]))
    monkeypatch.setattr(question_supply, "call_ai_api", ai)

    questions = await fetch_question_batch("Coordinador", "N/A", 1)

    assert len(questions) == 1
    assert ai.models == ["grok-3", "grok-3-mini"]


async def test_raises_when_nothing_is_available(fake_db, monkeypatch):
    request = httpx.Request("POST", "https://api.x.ai/v1/chat/completions")
    ai = FakeAI(httpx.ConnectError("down", request=request), httpx.ConnectError("down", request=request))
    monkeypatch.setattr(question_supply, "call_ai_api", ai)

    with pytest.raises(QuestionSupplyError):
        await fetch_question_batch("Coordinador", "N/A", 3)
    assert fake_db.questions_bank.docs == []
