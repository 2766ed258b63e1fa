# app/api/router.py
from fastapi import APIRouter, Depends

from app.api.endpoints import auth, subjects, subscription, webhooks, admin, admin_content
from app.core.dependencies import require_admin

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(subjects.router, prefix="/subjects", tags=["subjects"])
api_router.include_router(subscription.router, prefix="/subscription", tags=["subscription"])
api_router.include_router(webhooks.router, prefix="/subscription", tags=["webhooks"])
api_router.include_router(
    admin.router, prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)
api_router.include_router(
    admin_content.router, prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)
