# crmhub/modules/leads/scheduling.py

import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, List, Optional, Sequence

_NOME = re.compile(r"\{\{nome\}\}", re.IGNORECASE)
_PRIMEIRO_NOME = re.compile(r"\{\{primeiro_nome\}\}", re.IGNORECASE)


def render_template(template: str, lead_name: Optional[str]) -> str:
    """Substitui {{nome}} e {{primeiro_nome}} (case-insensitive)."""
    name = lead_name or ""
    first_name = name.split(" ")[0] or name
    # lambdas evitam interpretar "\" do nome como referência de grupo
    rendered = _NOME.sub(lambda _: name, template or "")
    return _PRIMEIRO_NOME.sub(lambda _: first_name, rendered)


def apply_send_window(when: datetime, start_hour: Optional[int], end_hour: Optional[int]) -> datetime:
    """Empurra `when` para dentro da janela [start_hour, end_hour) do mesmo relógio."""
    if start_hour is None or end_hour is None:
        return when
    if when.hour < start_hour:
        return when.replace(hour=start_hour, minute=0, second=0, microsecond=0)
    if when.hour >= end_hour:
        next_day = when + timedelta(days=1)
        return next_day.replace(hour=start_hour, minute=0, second=0, microsecond=0)
    return when


def _to_local(moment: datetime, tz: tzinfo) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz)


def _to_naive_utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def build_scheduled_messages(
    templates: Sequence[Any],
    lead: Any,
    reason_id: str,
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> List[Dict[str, Any]]:
    """
    Gera os documentos de mensagens agendadas para os templates ativos do motivo.

    A janela de envio é aplicada no horário local (`tz`); os horários gravados
    voltam para UTC sem tzinfo.
    """
    active = sorted((t for t in templates if t.is_active), key=lambda t: t.position)
    local_now = _to_local(now, tz)

    messages: List[Dict[str, Any]] = []
    for template in active:
        local_when = local_now + timedelta(minutes=template.delay_minutes or 0)
        local_when = apply_send_window(local_when, template.send_start_hour, template.send_end_hour)
        scheduled_at = _to_naive_utc(local_when)
        final_message = render_template(template.message_template, lead.name)
        messages.append({
            "lead_id": str(lead.id),
            "lead_name": lead.name,
            "lead_whatsapp": lead.whatsapp,
            "non_purchase_reason_id": reason_id,
            "template_id": str(template.id),
            "message": final_message,
            "final_message": final_message,
            "media_url": template.media_url,
            "media_filename": template.media_filename,
            "scheduled_at": scheduled_at,
            "original_scheduled_at": scheduled_at,
            "status": "pending",
        })
    return messages
