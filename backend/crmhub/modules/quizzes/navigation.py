# crmhub/modules/quizzes/navigation.py

from typing import List, Optional, Sequence

from .models import QuizAnswer, QuizStep


def can_proceed(step: QuizStep, answer: QuizAnswer) -> bool:
    if not step.is_required:
        return True
    if step.step_type in ("single_choice", "multiple_choice"):
        return len(answer.selected_option_ids) > 0
    if step.step_type in ("text_input", "number_input"):
        return bool((answer.text_value or "").strip())
    if step.step_type == "lead_capture":
        lead = answer.lead
        if lead is None:
            return not (step.capture_name or step.capture_whatsapp or step.capture_email)
        missing_name = step.capture_name and not lead.name
        missing_whatsapp = step.capture_whatsapp and not lead.whatsapp
        missing_email = step.capture_email and not lead.email
        return not (missing_name or missing_whatsapp or missing_email)
    return True


def score_for(step: QuizStep, selected_option_ids: Sequence[str]) -> int:
    selected = set(selected_option_ids)
    return sum(option.score for option in step.options if option.id in selected)


def resolve_next_step(steps: List[QuizStep], step: QuizStep, selected_option_ids: Sequence[str]) -> Optional[QuizStep]:
    """
    Próximo passo: desvio da primeira opção escolhida, depois o next_step_id do
    passo, depois o próximo na ordem. None = quiz concluído.
    `steps` já deve estar ordenado por posição.
    """
    by_id = {s.id: s for s in steps}

    if selected_option_ids:
        option = next((o for o in step.options if o.id == selected_option_ids[0]), None)
        if option and option.next_step_id in by_id:
            return by_id[option.next_step_id]

    if step.next_step_id in by_id:
        return by_id[step.next_step_id]

    ids = [s.id for s in steps]
    if step.id in ids:
        index = ids.index(step.id)
        if index + 1 < len(steps):
            return steps[index + 1]
    return None
