# tests/modules/reconciliation/test_matching.py
from datetime import datetime
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from crmhub.modules.reconciliation.matching import (
    CallRecord,
    filter_blocked,
    find_matching_attendance,
    find_matching_lead,
    format_speaking_time,
    local_date_key,
    parse_call_date,
    parse_calls_csv,
    parse_speaking_time,
    phones_match,
)

SAO_PAULO = ZoneInfo("America/Sao_Paulo")

CSV = (
    'number;queue_name;created_at;readable_status_text;agent_name;speaking_with_agent_time;'
    'mailing_data.data.queue_name;mailing_data.data.interesse no produto;mailing_data.data.motivo da perda\n'
    '"(51) 98942-3022";Receptivo;31/01/2026 09:59:31;Atendida;Joana;0:02:15;Campanha;"Kit; verão";Preço\n'
    '\n'
    ';Receptivo;31/01/2026 10:00:00;Abandonada;;0;;;\n'
    '5133334444;Receptivo;31/01/2026 10:05:00;Atendida;Pedro;45;;;\n'
)


@pytest.mark.parametrize("a,b,expected", [
    ("51989423022", "5551989423022", True),
    ("(51) 98942-3022", "51 98942 3022", True),
    ("5551989423022", "5511989423022", True),
    ("51989423022", "51989423099", False),
    ("1234567", "91234567", True),
    ("123", "", False),
])
def test_phones_match(a, b, expected):
    assert phones_match(a, b) is expected


@pytest.mark.parametrize("raw,seconds", [("0:02:15", 135), ("1:05", 65), ("45", 45), ("", 0), ("x:y", 0)])
def test_parse_speaking_time(raw, seconds):
    assert parse_speaking_time(raw) == seconds


def test_format_speaking_time():
    assert format_speaking_time(0) == "0:00"
    assert format_speaking_time(65) == "1:05"
    assert format_speaking_time(3725) == "1:02:05"


def test_parse_call_date():
    assert parse_call_date("31/01/2026 09:59:31") == datetime(2026, 1, 31, 9, 59, 31)
    assert parse_call_date("31/02/2026 09:59:31") is None
    assert parse_call_date("ontem") is None


def test_parse_calls_csv_skips_blank_and_numberless_rows():
    calls = parse_calls_csv(CSV)

    assert [c.number for c in calls] == ["51989423022", "5133334444"]
    first = calls[0]
    assert first.agent_name == "Joana"
    assert first.source_queue_name == "Campanha"
    assert first.product_interest == "Kit; verão"
    assert first.loss_reason == "Preço"
    assert first.speaking_time_seconds == 135
    assert calls[1].speaking_time_seconds == 45


def test_parse_calls_csv_unescapes_doubled_quotes():
    text = 'number;agent_name;speaking_with_agent_time\n5551989423022;"Ana ""Aninha"" Souza";30\n'
    calls = parse_calls_csv(text)

    assert len(calls) == 1
    assert calls[0].agent_name == 'Ana "Aninha" Souza'
    assert calls[0].speaking_time_seconds == 30


def test_parse_calls_csv_accepts_comma_export():
    text = (
        "\ufeffnumber,queue_name,agent_name,mailing_data.data.motivo da perda\n"
        '5133334444,Receptivo,Pedro,"Frete, prazo"\n'
    )
    calls = parse_calls_csv(text)

    assert [c.number for c in calls] == ["5133334444"]
    assert calls[0].queue_name == "Receptivo"
    assert calls[0].loss_reason == "Frete, prazo"


def test_parse_calls_csv_without_number_column():
    assert parse_calls_csv("foo;bar\n1;2\n") == []
    assert parse_calls_csv("number") == []


def test_filter_blocked_ignores_empty_entries():
    calls = [CallRecord(number="5551989423022"), CallRecord(number="5133334444")]
    kept = filter_blocked(calls, blacklist=["", "  "], cnpj_numbers=["51 3333-4444"])
    assert [c.number for c in kept] == ["5551989423022"]


def test_local_date_key_converts_naive_utc():
    # 02:00 UTC ainda é o dia anterior em São Paulo
    assert local_date_key(datetime(2026, 2, 1, 2, 0), SAO_PAULO) == "2026-01-31"


def test_find_matching_attendance_requires_same_local_day():
    call = CallRecord(number="51989423022")
    same_day = SimpleNamespace(created_at=datetime(2026, 2, 1, 2, 0), phone_searched="5551989423022")
    other_day = SimpleNamespace(created_at=datetime(2026, 2, 1, 15, 0), phone_searched="5551989423022")

    assert find_matching_attendance(call, datetime(2026, 1, 31, 23, 0), [other_day, same_day], SAO_PAULO) is same_day
    assert find_matching_attendance(call, datetime(2026, 1, 30, 23, 0), [other_day, same_day], SAO_PAULO) is None


def test_find_matching_lead():
    leads = [SimpleNamespace(whatsapp="5511900000000"), SimpleNamespace(whatsapp="5551989423022")]
    assert find_matching_lead(CallRecord(number="51989423022"), leads) is leads[1]
    assert find_matching_lead(CallRecord(number="11"), leads) is None
