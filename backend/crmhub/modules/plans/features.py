# crmhub/modules/plans/features.py
"""Catálogo de features liberáveis por plano e resolução com overrides por organização."""

from typing import Dict, Iterable, Mapping, NamedTuple


class FeatureInfo(NamedTuple):
    label: str
    group: str


AVAILABLE_FEATURES: Dict[str, FeatureInfo] = {
    # Dashboards
    "dashboard_funnel": FeatureInfo("Dashboard Funil", "Dashboards"),
    "dashboard_kanban": FeatureInfo("Dashboard Kanban", "Dashboards"),
    "seller_panel": FeatureInfo("Meu Painel (Vendedor)", "Dashboards"),
    "sales_dashboard": FeatureInfo("Dashboard Vendas (Gamificação)", "Dashboards"),
    # Módulos principais
    "leads": FeatureInfo("Leads / CRM", "Módulos Principais"),
    "products": FeatureInfo("Produtos", "Módulos Principais"),
    "standard_questions": FeatureInfo("Perguntas Padrão", "Módulos Principais"),
    "custom_questions": FeatureInfo("Perguntas Personalizadas", "Módulos Principais"),
    # Vendas
    "sales": FeatureInfo("Vendas", "Vendas"),
    "deliveries": FeatureInfo("Entregas", "Vendas"),
    "expedition": FeatureInfo("Expedição", "Vendas"),
    "receptive": FeatureInfo("Add Receptivo", "Vendas"),
    "receptive_manage": FeatureInfo("Gerência Receptivo", "Vendas"),
    # Pós-venda
    "post_sale": FeatureInfo("Pós-Venda", "Pós-Venda & SAC"),
    "post_sale_kanban": FeatureInfo("Kanban Pós-Venda", "Pós-Venda & SAC"),
    "sac": FeatureInfo("SAC (Chamados)", "Pós-Venda & SAC"),
    # Mensagens
    "scheduled_messages": FeatureInfo("Mensagens Agendadas", "Mensagens & Automação"),
    "ai_bots": FeatureInfo("Robôs de IA", "Mensagens & Automação"),
    # WhatsApp
    "whatsapp_v1": FeatureInfo("WhatsApp 1.0 (DMs)", "WhatsApp"),
    "whatsapp_v2": FeatureInfo("WhatsApp 2.0", "WhatsApp"),
    "whatsapp_multiattendant": FeatureInfo("Multi-Atendimento", "WhatsApp"),
    "whatsapp_manage": FeatureInfo("Gerenciar WhatsApp", "WhatsApp"),
    "wavoip_calls": FeatureInfo("Chamadas Wavoip (Telefone)", "WhatsApp"),
    "instagram": FeatureInfo("Instagram DMs", "Canais Adicionais"),
    # Demandas
    "demands": FeatureInfo("Demandas", "Demandas"),
    "demands_settings": FeatureInfo("Config. Demandas", "Demandas"),
    # Relatórios
    "sales_report": FeatureInfo("Relatório de Vendas", "Relatórios"),
    "expedition_report": FeatureInfo("Relatório de Expedição", "Relatórios"),
    "financial": FeatureInfo("Financeiro", "Relatórios"),
    # Gerenciamento
    "team": FeatureInfo("Minha Equipe", "Gerenciamento"),
    "settings": FeatureInfo("Configurações", "Gerenciamento"),
    "integrations": FeatureInfo("Integrações", "Gerenciamento"),
    # Interno
    "new_organization": FeatureInfo("Nova Organização", "Super Admin"),
    "interested_leads": FeatureInfo("Leads Interessados", "Super Admin"),
}


def is_known_feature(feature_key: str) -> bool:
    return feature_key in AVAILABLE_FEATURES


def resolve_features(plan_features: Mapping[str, bool], overrides: Iterable) -> Dict[str, bool]:
    """Tudo desligado, depois flags do plano, depois overrides da organização."""
    effective = {key: False for key in AVAILABLE_FEATURES}
    for key, enabled in plan_features.items():
        if key in effective:
            effective[key] = bool(enabled)
    for override in overrides:
        if override.feature_key in effective:
            effective[override.feature_key] = bool(override.is_enabled)
    return effective


def features_by_group() -> Dict[str, Dict[str, str]]:
    grouped: Dict[str, Dict[str, str]] = {}
    for key, info in AVAILABLE_FEATURES.items():
        grouped.setdefault(info.group, {})[key] = info.label
    return grouped
