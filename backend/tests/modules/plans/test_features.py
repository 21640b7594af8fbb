# tests/modules/plans/test_features.py
from types import SimpleNamespace

from crmhub.modules.plans.features import AVAILABLE_FEATURES, features_by_group, is_known_feature, resolve_features


def _override(key: str, enabled: bool):
    return SimpleNamespace(feature_key=key, is_enabled=enabled)


def test_everything_starts_disabled():
    effective = resolve_features({}, [])
    assert set(effective) == set(AVAILABLE_FEATURES)
    assert not any(effective.values())


def test_plan_then_overrides():
    effective = resolve_features(
        {"leads": True, "sales": True, "not_a_feature": True},
        [_override("sales", False), _override("financial", True), _override("bogus", True)],
    )

    assert effective["leads"] is True
    assert effective["sales"] is False
    assert effective["financial"] is True
    assert "not_a_feature" not in effective
    assert "bogus" not in effective


def test_catalogue_helpers():
    assert is_known_feature("integrations")
    assert not is_known_feature("teleport")
    groups = features_by_group()
    assert groups["Vendas"]["sales"] == "Vendas"
    assert sum(len(g) for g in groups.values()) == len(AVAILABLE_FEATURES)
