# tests/modules/leads/test_scheduling.py
from datetime import datetime
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from crmhub.modules.leads.scheduling import apply_send_window, build_scheduled_messages, render_template

SAO_PAULO = ZoneInfo("America/Sao_Paulo")


def _template(template_id: str, **overrides):
    data = {
        "id": template_id,
        "message_template": "Oi {{primeiro_nome}}!",
        "delay_minutes": 0,
        "position": 0,
        "is_active": True,
        "send_start_hour": None,
        "send_end_hour": None,
        "media_url": None,
        "media_filename": None,
    }
    data.update(overrides)
    return SimpleNamespace(**data)


LEAD = SimpleNamespace(id="lead-1", name="Maria Clara Souza", whatsapp="5551989423022")


def test_render_template_is_case_insensitive():
    assert render_template("{{NOME}} / {{Primeiro_Nome}}", "Maria Clara") == "Maria Clara / Maria"
    assert render_template("Olá {{nome}}", None) == "Olá "


def test_render_template_keeps_backslashes_in_name():
    assert render_template("{{nome}}", r"A\1B") == r"A\1B"


def test_apply_send_window():
    morning = datetime(2026, 3, 10, 6, 30)
    night = datetime(2026, 3, 10, 22, 15)
    inside = datetime(2026, 3, 10, 14, 5)

    assert apply_send_window(morning, 9, 20) == datetime(2026, 3, 10, 9, 0)
    assert apply_send_window(night, 9, 20) == datetime(2026, 3, 11, 9, 0)
    assert apply_send_window(inside, 9, 20) == inside
    assert apply_send_window(night, None, 20) == night


def test_build_scheduled_messages_orders_and_skips_inactive():
    templates = [
        _template("t2", position=2, delay_minutes=60, message_template="Segunda, {{nome}}"),
        _template("t1", position=1, delay_minutes=10),
        _template("t3", position=0, is_active=False),
    ]
    now = datetime(2026, 3, 10, 15, 0)  # 12:00 em São Paulo
    messages = build_scheduled_messages(templates, LEAD, "reason-1", now, SAO_PAULO)

    assert [m["template_id"] for m in messages] == ["t1", "t2"]
    assert messages[0]["final_message"] == "Oi Maria!"
    assert messages[1]["message"] == "Segunda, Maria Clara Souza"
    assert messages[0]["scheduled_at"] == datetime(2026, 3, 10, 15, 10)
    assert messages[1]["scheduled_at"] == datetime(2026, 3, 10, 16, 0)
    assert all(m["status"] == "pending" and m["non_purchase_reason_id"] == "reason-1" for m in messages)
    assert messages[0]["lead_whatsapp"] == LEAD.whatsapp


def test_send_window_applies_in_local_time():
    # 23:30 UTC = 20:30 em São Paulo: fora da janela 9-20, vai para 9h local do dia seguinte (12h UTC)
    now = datetime(2026, 3, 10, 23, 30)
    messages = build_scheduled_messages([_template("t1", send_start_hour=9, send_end_hour=20)], LEAD, "r", now, SAO_PAULO)

    assert messages[0]["scheduled_at"] == datetime(2026, 3, 11, 12, 0)
    assert messages[0]["original_scheduled_at"] == messages[0]["scheduled_at"]
    assert messages[0]["scheduled_at"].tzinfo is None
