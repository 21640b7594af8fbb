# crmhub/modules/reconciliation/matching.py
"""Parser do CSV de ligações do discador (3C) e matching de telefones."""

import csv
import io
import re
from datetime import datetime, timezone, tzinfo
from typing import Any, Iterable, List, Optional, Sequence

from pydantic import BaseModel

_NON_DIGITS = re.compile(r"\D")
_CALL_DATE = re.compile(r"(\d{2})/(\d{2})/(\d{4})\s+(\d{2}):(\d{2}):(\d{2})")


class CallRecord(BaseModel):
    number: str
    queue_name: str = ""
    source_queue_name: str = ""
    created_at: str = ""
    readable_status_text: str = ""
    product_interest: str = ""
    loss_reason: str = ""
    agent_name: str = ""
    speaking_time_seconds: int = 0


def digits_only(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", value or "")


def phones_match(a: Optional[str], b: Optional[str]) -> bool:
    """
    Compara telefones tolerando DDI ausente: "51989423022" casa com "5551989423022".
    Sem sufixo comum, compara os últimos N dígitos (N = menor tamanho, máx 10, mín 8).
    """
    a, b = digits_only(a), digits_only(b)
    if not a or not b:
        return False
    if a == b or a.endswith(b) or b.endswith(a):
        return True
    n = min(len(a), len(b), 10)
    if n >= 8:
        return a[-n:] == b[-n:]
    return False


def parse_speaking_time(raw: Optional[str]) -> int:
    raw = (raw or "").strip()
    if not raw or raw == "0":
        return 0
    if ":" in raw:
        try:
            parts = [int(p) for p in raw.split(":")]
        except ValueError:
            return 0
        if len(parts) == 3:
            return parts[0] * 3600 + parts[1] * 60 + parts[2]
        if len(parts) == 2:
            return parts[0] * 60 + parts[1]
        return 0
    match = re.match(r"[-+]?\d+", raw)
    return int(match.group(0)) if match else 0


def format_speaking_time(seconds: Optional[int]) -> str:
    if not seconds or seconds <= 0:
        return "0:00"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def parse_call_date(raw: Optional[str]) -> Optional[datetime]:
    """'31/01/2026 09:59:31' -> datetime local (sem tzinfo)."""
    match = _CALL_DATE.search(raw or "")
    if not match:
        return None
    day, month, year, hour, minute, second = (int(g) for g in match.groups())
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def _delimiter(header_line: str) -> str:
    """Discador exporta com `;`; planilhas reexportadas costumam vir com `,`."""
    try:
        return csv.Sniffer().sniff(header_line, delimiters=";,").delimiter
    except csv.Error:
        # cabeçalho de uma coluna só
        return ";"


def parse_calls_csv(text: str) -> List[CallRecord]:
    text = text.lstrip("\ufeff")
    lines = text.splitlines()
    if len(lines) < 2:
        return []

    # só o delimitador vem do Sniffer; aspas seguem o padrão excel ("" escapa aspas)
    rows = csv.reader(io.StringIO(text), delimiter=_delimiter(lines[0]))
    header = [h.strip() for h in next(rows)]

    def index_of(name: str) -> int:
        return header.index(name) if name in header else -1

    def index_containing(fragment: str) -> int:
        return next((i for i, h in enumerate(header) if fragment in h), -1)

    columns = {
        "number": index_of("number"),
        "queue_name": index_of("queue_name"),
        "created_at": index_of("created_at"),
        "readable_status_text": index_of("readable_status_text"),
        "agent_name": index_of("agent_name"),
        "speaking": index_of("speaking_with_agent_time"),
        "source_queue_name": index_containing("mailing_data.data.queue_name"),
        "product_interest": index_containing("interesse no produto"),
        "loss_reason": index_containing("motivo da perda"),
    }
    if columns["number"] < 0:
        return []

    calls: List[CallRecord] = []
    for values in rows:
        if not any(value.strip() for value in values):
            continue

        def cell(key: str) -> str:
            idx = columns[key]
            if idx < 0 or idx >= len(values):
                return ""
            return values[idx].strip()

        number = cell("number")
        if not number:
            continue
        calls.append(CallRecord(
            number=digits_only(number),
            queue_name=cell("queue_name"),
            source_queue_name=cell("source_queue_name"),
            created_at=cell("created_at"),
            readable_status_text=cell("readable_status_text"),
            product_interest=cell("product_interest"),
            loss_reason=cell("loss_reason"),
            agent_name=cell("agent_name"),
            speaking_time_seconds=parse_speaking_time(cell("speaking") or "0"),
        ))
    return calls


def _is_blocked(number: str, entries: Iterable[str]) -> bool:
    return any(entry in number or number in entry for entry in entries)


def filter_blocked(calls: Sequence[CallRecord], blacklist: Iterable[str], cnpj_numbers: Iterable[str]) -> List[CallRecord]:
    """Remove ligações de números bloqueados ou de empresas (CNPJ)."""
    blocked = [d for d in (digits_only(entry) for entry in [*blacklist, *cnpj_numbers]) if d]
    return [call for call in calls if not _is_blocked(call.number, blocked)]


def local_date_key(moment: datetime, tz: tzinfo) -> str:
    """Data local (YYYY-MM-DD) de um datetime UTC salvo sem tzinfo."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).strftime("%Y-%m-%d")


def find_matching_attendance(call: CallRecord, call_date: datetime, attendances: Sequence[Any], tz: tzinfo) -> Optional[Any]:
    """Primeiro atendimento do mesmo dia (fuso local) com telefone compatível."""
    call_key = call_date.strftime("%Y-%m-%d")
    for attendance in attendances:
        if local_date_key(attendance.created_at, tz) == call_key and phones_match(call.number, attendance.phone_searched):
            return attendance
    return None


def find_matching_lead(call: CallRecord, leads: Sequence[Any]) -> Optional[Any]:
    return next((lead for lead in leads if phones_match(call.number, lead.whatsapp)), None)
