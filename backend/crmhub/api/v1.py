# crmhub/api/v1.py
from fastapi import APIRouter

from crmhub.api.endpoints import status
from crmhub.modules.integrations.routers import integrations_router, webhook_router
from crmhub.modules.leads.routers import followup_config_router, funnel_router, leads_router
from crmhub.modules.members.routers import auth_router, members_router
from crmhub.modules.plans.routers import plans_router
from crmhub.modules.quizzes.routers import public_quiz_router, quizzes_router
from crmhub.modules.reconciliation.routers import attendances_router, reconciliation_router
from crmhub.modules.sales.routers import delivery_regions_router, payment_methods_router, sales_router
from crmhub.modules.stock.routers import products_router

api_router = APIRouter()

api_router.include_router(status.router, prefix="/status", tags=["Status & Health"])
api_router.include_router(auth_router, prefix="/auth", tags=["Auth"])
api_router.include_router(members_router, prefix="/members", tags=["Members"])
api_router.include_router(products_router, prefix="/products", tags=["Products & Stock"])
api_router.include_router(leads_router, prefix="/leads", tags=["Leads"])
api_router.include_router(funnel_router, prefix="/funnel-stages", tags=["Leads"])
api_router.include_router(followup_config_router, prefix="/followups", tags=["Follow-ups"])
api_router.include_router(sales_router, prefix="/sales", tags=["Sales"])
api_router.include_router(payment_methods_router, prefix="/payment-methods", tags=["Sales"])
api_router.include_router(delivery_regions_router, prefix="/delivery-regions", tags=["Sales"])
api_router.include_router(webhook_router, prefix="/integrations", tags=["Integration Webhooks"])
api_router.include_router(integrations_router, prefix="/integrations", tags=["Integrations"])
api_router.include_router(reconciliation_router, prefix="/reconciliation", tags=["Reconciliation"])
api_router.include_router(attendances_router, prefix="/receptive-attendances", tags=["Reconciliation"])
api_router.include_router(public_quiz_router, prefix="/public/quizzes", tags=["Quizzes (public)"])
api_router.include_router(quizzes_router, prefix="/quizzes", tags=["Quizzes"])
api_router.include_router(plans_router, prefix="/plans", tags=["Plans & Features"])
