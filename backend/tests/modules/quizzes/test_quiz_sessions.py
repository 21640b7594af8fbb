# tests/modules/quizzes/test_quiz_sessions.py
import pytest
from fastapi import HTTPException

from crmhub.modules.leads.repository import LeadRepository
from crmhub.modules.quizzes.models import LeadCaptureData, QuizAnswer, QuizCreateAPI, QuizStartAPI
from crmhub.modules.quizzes.repository import QuizEventRepository, QuizSessionRepository
from crmhub.modules.quizzes.services import QuizAdminService, QuizService

pytestmark = pytest.mark.asyncio


def _quiz_payload(slug: str = "pele-ideal") -> QuizCreateAPI:
    return QuizCreateAPI(
        name="Pele ideal",
        slug=slug,
        requires_lead_capture=True,
        steps=[
            {"id": "s1", "step_type": "single_choice", "title": "Tipo de pele?", "position": 0, "options": [
                {"id": "oleosa", "label": "Oleosa", "score": 10, "next_step_id": "s3"},
                {"id": "seca", "label": "Seca", "score": 5},
            ]},
            {"id": "s2", "step_type": "info", "title": "Sobre peles secas", "position": 1},
            {"id": "s3", "step_type": "lead_capture", "title": "Seus dados", "position": 2,
             "capture_name": True, "capture_whatsapp": True},
            {"id": "s4", "step_type": "result", "title": "Resultado", "position": 3},
        ],
    )


async def _start(db, principal, slug: str = "pele-ideal"):
    await QuizAdminService(db, principal.organization_id).create(principal, _quiz_payload(slug))
    return await QuizService(db).start_session(slug, QuizStartAPI(utm_source="instagram"))


async def test_branching_capture_and_completion(db, principal):
    service = QuizService(db)
    session = await _start(db, principal)
    assert session.current_step.id == "s1"

    session = await service.answer(session.session_id, "s1", QuizAnswer(selected_option_ids=["oleosa"]))
    assert session.current_step.id == "s3"
    assert session.total_score == 10

    session = await service.answer(session.session_id, "s3", QuizAnswer(
        lead=LeadCaptureData(name="Luana", whatsapp="(11) 97777-6666"),
    ))
    assert session.current_step.id == "s4"
    assert session.lead_id is not None

    lead = await LeadRepository(db, principal.organization_id).get_by_id(session.lead_id)
    assert lead.whatsapp == "5511977776666"
    assert lead.source == "quiz:pele-ideal"

    session = await service.answer(session.session_id, "s4", QuizAnswer())
    assert session.is_completed is True
    assert session.current_step is None

    stored = await QuizSessionRepository(db, principal.organization_id).get_by_id(session.session_id)
    assert stored.utm["utm_source"] == "instagram"
    assert set(stored.answers) == {"s1", "s3", "s4"}
    assert stored.completed_at is not None

    events = await QuizEventRepository(db, principal.organization_id).list_by({"session_id": session.session_id}, limit=0)
    kinds = [e.event_type for e in events]
    assert kinds.count("step_complete") == 3
    assert {"quiz_view", "lead_captured", "quiz_complete"} <= set(kinds)


async def test_capture_reuses_existing_lead(db, principal):
    leads = LeadRepository(db, principal.organization_id)
    existing = await leads.create({"name": "Luana", "whatsapp": "5511977776666"})
    service = QuizService(db)
    session = await _start(db, principal)

    await service.answer(session.session_id, "s1", QuizAnswer(selected_option_ids=["oleosa"]))
    session = await service.answer(session.session_id, "s3", QuizAnswer(
        lead=LeadCaptureData(name="Outra", whatsapp="11977776666", email="luana@example.com"),
    ))
    assert session.lead_id == str(existing.id)
    assert (await leads.get_by_id(existing.id)).email == "luana@example.com"
    assert await leads.count() == 1


async def test_required_answers(db, principal):
    service = QuizService(db)
    session = await _start(db, principal)

    with pytest.raises(HTTPException) as exc:
        await service.answer(session.session_id, "s1", QuizAnswer())
    assert exc.value.status_code == 400

    await service.answer(session.session_id, "s1", QuizAnswer(selected_option_ids=["oleosa"]))
    with pytest.raises(HTTPException) as exc:
        await service.answer(session.session_id, "s3", QuizAnswer(lead=LeadCaptureData(name="Sem zap")))
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        await service.answer(session.session_id, "nope", QuizAnswer())
    assert exc.value.status_code == 404


async def test_completed_session_rejects_answers(db, principal):
    service = QuizService(db)
    session = await _start(db, principal)
    await service.answer(session.session_id, "s1", QuizAnswer(selected_option_ids=["seca"]))
    await service.answer(session.session_id, "s2", QuizAnswer())
    await service.answer(session.session_id, "s3", QuizAnswer(lead=LeadCaptureData(name="Ana", whatsapp="11988887777")))
    await service.answer(session.session_id, "s4", QuizAnswer())

    with pytest.raises(HTTPException) as exc:
        await service.answer(session.session_id, "s4", QuizAnswer())
    assert exc.value.status_code == 409


async def test_unknown_or_inactive_quiz(db, principal):
    service = QuizService(db)
    with pytest.raises(HTTPException) as exc:
        await service.start_session("nao-existe", QuizStartAPI())
    assert exc.value.status_code == 404

    payload = _quiz_payload("inativo")
    payload.is_active = False
    await QuizAdminService(db, principal.organization_id).create(principal, payload)
    with pytest.raises(HTTPException) as exc:
        await service.start_session("inativo", QuizStartAPI())
    assert exc.value.status_code == 404


async def test_slug_is_unique_across_organizations(db, principal):
    await QuizAdminService(db, principal.organization_id).create(principal, _quiz_payload())
    with pytest.raises(HTTPException) as exc:
        await QuizAdminService(db, "other-org").create(principal, _quiz_payload())
    assert exc.value.status_code == 409


async def test_public_endpoints(test_client, auth_headers):
    created = await test_client.post("/api/v1/quizzes", json=_quiz_payload("via-api").model_dump(), headers=auth_headers)
    assert created.status_code == 201

    started = await test_client.post("/api/v1/public/quizzes/via-api/sessions", json={"utm_campaign": "verao"})
    assert started.status_code == 201
    session_id = started.json()["session_id"]

    answered = await test_client.post(
        f"/api/v1/public/quizzes/sessions/{session_id}/steps/s1", json={"selected_option_ids": ["seca"]},
    )
    assert answered.status_code == 200
    assert answered.json()["current_step"]["id"] == "s2"
