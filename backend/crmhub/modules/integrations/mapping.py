# crmhub/modules/integrations/mapping.py
"""
Mapeamento de payloads de webhooks externos para lead / endereço / venda.

Funções puras: nenhum acesso a banco. O serviço de ingestão decide o que
fazer com o `MappedRecord` resultante.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, get_args
from urllib.parse import parse_qsl

from pydantic import BaseModel, Field


class InvalidPayload(ValueError):
    """Corpo declarado (ou com cara de) JSON que não pôde ser decodificado."""


class FieldMappingRule(BaseModel):
    source_field: str
    target_field: str
    transform_type: str = "none"


class MappedRecord(BaseModel):
    lead: Dict[str, str] = Field(default_factory=dict)
    address: Dict[str, str] = Field(default_factory=dict)
    sale: Dict[str, str] = Field(default_factory=dict)

    @property
    def has_identity(self) -> bool:
        return bool(self.lead.get("name") or self.lead.get("whatsapp") or self.lead.get("email"))


# Ordem importa: o primeiro alias com valor vence
FIELD_ALIASES: Dict[str, List[str]] = {
    "name": ["name", "nome", "nome_completo", "full_name", "fullName", "customer_name", "customerName", "nome completo"],
    "email": ["email", "e-mail", "mail", "customer_email", "customerEmail"],
    "whatsapp": ["whatsapp", "phone", "telefone", "celular", "mobile", "tel", "fone", "customer_phone", "customerPhone"],
    "cpf": ["cpf", "documento", "document", "customer_cpf", "customerCpf"],
    "observations": ["observations", "observacoes", "notes", "notas", "observacao"],
    "address_street": ["street", "rua", "endereco", "address", "logradouro"],
    "address_number": ["number", "numero", "num", "street_number"],
    "address_complement": ["complement", "complemento", "comp"],
    "address_neighborhood": ["neighborhood", "bairro", "district"],
    "address_city": ["city", "cidade", "municipio"],
    "address_state": ["state", "estado", "uf"],
    "address_cep": ["cep", "zipcode", "zip", "postal_code", "postalCode", "zip_code"],
    "sale_product_name": ["product.name", "product_name", "productName", "link.title", "item_name", "item.name"],
    "sale_product_sku": ["product.sku", "product_sku", "productSku", "sku", "product.code", "product_code"],
    "sale_quantity": ["quantity", "quantidade", "qty", "qtd", "product.quantity"],
    "sale_total_cents": ["total_cents", "amount", "value", "total", "price", "preco"],
    "sale_external_id": ["order_id", "orderId", "external_id", "transaction_id", "transactionId", "id_pedido"],
    "sale_external_url": ["order_url", "orderUrl", "external_url", "link", "url_pedido"],
}

MAPPING_TARGETS = Literal[
    "name", "email", "whatsapp", "cpf", "observations",
    "address_street", "address_number", "address_complement", "address_neighborhood",
    "address_city", "address_state", "address_cep",
    "sale_product_name", "sale_product_sku", "sale_quantity", "sale_total_cents",
    "sale_external_id", "sale_external_url",
]
# destinos aceitos; qualquer outro é descartado no roteamento
KNOWN_TARGETS = frozenset(get_args(MAPPING_TARGETS))

_NON_DIGITS = re.compile(r"\D")
_KEY_SEPARATORS = re.compile(r"[_\s-]")


def normalize_phone(value: Optional[str], country_code: str = "55") -> str:
    if not value:
        return ""
    digits = _NON_DIGITS.sub("", str(value))
    if digits.startswith(country_code) and len(digits) >= 12:
        return digits
    if len(digits) in (10, 11):
        return country_code + digits
    return digits


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def apply_transform(value: Any, transform_type: Optional[str]) -> str:
    if value is None:
        return ""
    text = _to_text(value).strip()
    if transform_type == "phone_normalize":
        return normalize_phone(text)
    if transform_type == "uppercase":
        return text.upper()
    if transform_type == "lowercase":
        return text.lower()
    return text


def extract_nested_value(payload: Any, path: str) -> Any:
    value = payload
    for part in path.split("."):
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(part)
        elif isinstance(value, list) and part.isdigit() and int(part) < len(value):
            value = value[int(part)]
        else:
            return None
    return value


def _search_keys(node: Any, target: str, target_compact: str) -> Any:
    if isinstance(node, Mapping):
        items: Iterable = node.items()
    elif isinstance(node, list):
        items = enumerate(node)
    else:
        return None

    for key, value in items:
        key_lower = str(key).lower()
        if key_lower == target or _KEY_SEPARATORS.sub("", key_lower) == target_compact:
            return value
        if isinstance(value, (Mapping, list)):
            found = _search_keys(value, target, target_compact)
            if found is not None:
                return found
    return None


def find_value_in_payload(payload: Any, field: str) -> Any:
    """Caminho exato ("a.b.c") e, se não houver valor, busca recursiva pela chave."""
    value = extract_nested_value(payload, field)
    if value is not None:
        return value
    target = field.lower()
    return _search_keys(payload, target, _KEY_SEPARATORS.sub("", target))


def _route(record: MappedRecord, target_field: str, value: str, overwrite_lead: bool = True) -> None:
    if target_field not in KNOWN_TARGETS:
        return
    if target_field.startswith("address_"):
        record.address[target_field[len("address_"):]] = value
    elif target_field.startswith("sale_"):
        record.sale[target_field[len("sale_"):]] = value
    elif overwrite_lead or not record.lead.get(target_field):
        record.lead[target_field] = value


def map_payload(payload: Any, mappings: Optional[List[FieldMappingRule]] = None) -> MappedRecord:
    record = MappedRecord()
    mappings = mappings or []

    for mapping in mappings:
        raw_value = find_value_in_payload(payload, mapping.source_field)
        transformed = apply_transform(raw_value, mapping.transform_type)
        if transformed:
            _route(record, mapping.target_field, transformed)

    if mappings:
        return record

    # Sem mapeamentos configurados: auto-detecção pelos aliases
    for target_field, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            value = find_value_in_payload(payload, alias)
            if not value:
                continue
            if target_field == "whatsapp":
                transformed = normalize_phone(_to_text(value))
            else:
                transformed = _to_text(value).strip()
            _route(record, target_field, transformed, overwrite_lead=False)
            break
    return record


def parse_total_cents(raw: Any) -> int:
    """Valores >= 100 já estão em centavos; menores são reais e viram centavos."""
    if raw is None or raw == "" or isinstance(raw, bool):
        return 0
    if isinstance(raw, (int, float)):
        return int(round(raw))
    clean = re.sub(r"[^\d,.]", "", str(raw)).replace(",", ".", 1)
    match = re.match(r"\d*\.?\d+|\d+", clean)
    if not match:
        return 0
    amount = float(match.group(0))
    return round(amount) if amount >= 100 else round(amount * 100)


def parse_quantity(raw: Any) -> int:
    match = re.match(r"\s*[-+]?\d+", str(raw or ""))
    quantity = int(match.group(0)) if match else 0
    return quantity or 1


def parse_body(raw_text: Optional[str], content_type: Optional[str]) -> Any:
    if not raw_text:
        return None
    content_type = (content_type or "").lower()
    stripped = raw_text.strip()
    if "application/json" in content_type or stripped.startswith(("{", "[")):
        try:
            return json.loads(raw_text)
        except json.JSONDecodeError as e:
            raise InvalidPayload("Invalid JSON payload") from e
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(raw_text, keep_blank_values=True))
    try:
        return json.loads(raw_text)
    except json.JSONDecodeError:
        return None


def is_test_request(path: str, query: Mapping[str, str], payload: Any = None) -> bool:
    if path.rstrip("/").endswith("/test") or query.get("test") == "1" or query.get("mode") == "test":
        return True
    if isinstance(payload, Mapping):
        return payload.get("test") is True or payload.get("mode") == "test"
    return False
