# tests/modules/integrations/test_mapping.py
import pytest

from crmhub.modules.integrations.mapping import (
    FieldMappingRule,
    InvalidPayload,
    apply_transform,
    find_value_in_payload,
    is_test_request,
    map_payload,
    normalize_phone,
    parse_body,
    parse_quantity,
    parse_total_cents,
)


@pytest.mark.parametrize("raw,expected", [
    ("(51) 98942-3022", "5551989423022"),
    ("5551989423022", "5551989423022"),
    ("5133334444", "555133334444"),
    ("12345", "12345"),
    (None, ""),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_find_value_by_path_and_by_recursive_key():
    payload = {"customer": {"contact": {"Phone-Number": "123"}}, "product": {"name": "Kit"}}
    assert find_value_in_payload(payload, "product.name") == "Kit"
    assert find_value_in_payload(payload, "phone_number") == "123"
    assert find_value_in_payload(payload, "missing") is None


def test_find_value_walks_lists():
    payload = {"items": [{"sku": "A1"}, {"sku": "B2"}]}
    assert find_value_in_payload(payload, "items.1.sku") == "B2"
    assert find_value_in_payload(payload, "sku") == "A1"


def test_transforms():
    assert apply_transform("  Maria ", "uppercase") == "MARIA"
    assert apply_transform("ABC", "lowercase") == "abc"
    assert apply_transform("(51) 98942-3022", "phone_normalize") == "5551989423022"
    assert apply_transform(True, None) == "true"
    assert apply_transform(None, "uppercase") == ""


def test_auto_detect_routes_lead_address_and_sale_fields():
    payload = {
        "nome": "Maria Silva",
        "telefone": "(51) 98942-3022",
        "email": "maria@example.com",
        "endereco": {"rua": "Rua A", "cidade": "Porto Alegre", "cep": "90000-000"},
        "product_name": "Kit Verão",
        "product_sku": "KV-1",
        "quantidade": "2",
        "order_id": "ext-9",
    }
    record = map_payload(payload)

    assert record.lead == {"name": "Maria Silva", "whatsapp": "5551989423022", "email": "maria@example.com"}
    assert record.address["city"] == "Porto Alegre"
    assert record.address["cep"] == "90000-000"
    assert record.sale["product_name"] == "Kit Verão"
    assert record.sale["product_sku"] == "KV-1"
    assert record.sale["quantity"] == "2"
    assert record.sale["external_id"] == "ext-9"
    assert record.has_identity


def test_first_alias_with_value_wins():
    record = map_payload({"name": "", "full_name": "Ana", "customer_name": "Outra"})
    assert record.lead["name"] == "Ana"


def test_configured_mappings_disable_auto_detection():
    rules = [
        FieldMappingRule(source_field="buyer.fone", target_field="whatsapp", transform_type="phone_normalize"),
        FieldMappingRule(source_field="buyer.nick", target_field="name", transform_type="uppercase"),
    ]
    record = map_payload({"buyer": {"fone": "51 98942 3022", "nick": "zé"}, "email": "x@example.com"}, rules)

    assert record.lead == {"whatsapp": "5551989423022", "name": "ZÉ"}
    assert "email" not in record.lead


def test_unknown_targets_are_dropped():
    rules = [
        FieldMappingRule(source_field="rating", target_field="stars"),
        FieldMappingRule(source_field="total", target_field="negotiated_value"),
        FieldMappingRule(source_field="bairro", target_field="address_planet"),
        FieldMappingRule(source_field="nome", target_field="name"),
    ]
    record = map_payload({"rating": "five", "total": "10", "bairro": "Centro", "nome": "Ana"}, rules)

    assert record.lead == {"name": "Ana"}
    assert record.address == {}


def test_payload_without_identity():
    assert not map_payload({"foo": "bar"}).has_identity


@pytest.mark.parametrize("raw,expected", [
    ("R$ 49,90", 4990),
    ("197.00", 197),
    ("150", 150),
    (4990, 4990),
    ("", 0),
    (None, 0),
    ("abc", 0),
])
def test_parse_total_cents(raw, expected):
    assert parse_total_cents(raw) == expected


def test_parse_quantity_defaults_to_one():
    assert parse_quantity("3 unidades") == 3
    assert parse_quantity("") == 1
    assert parse_quantity("0") == 1


def test_parse_body_variants():
    assert parse_body('{"a": 1}', "application/json") == {"a": 1}
    assert parse_body("a=1&b=", "application/x-www-form-urlencoded") == {"a": "1", "b": ""}
    assert parse_body("plain text", "text/plain") is None
    assert parse_body("", "application/json") is None
    with pytest.raises(InvalidPayload):
        parse_body("{broken", "text/plain")


def test_is_test_request():
    assert is_test_request("/api/v1/integrations/webhook/test", {})
    assert is_test_request("/webhook", {"test": "1"})
    assert is_test_request("/webhook", {}, {"mode": "test"})
    assert not is_test_request("/webhook", {}, {"name": "x"})
