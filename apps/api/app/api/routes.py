from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from app.api.deps import get_current_actor
from app.commissions.api import router as commissions_router
from app.core.config import get_settings
from app.history.api import router as history_router
from app.lien_rights.api import router as lien_rights_router
from app.metrics import generate_metrics_payload, metrics_content_type
from app.pipeline.api import router as jobs_router
from app.pipeline.api import team_router
from app.platform.security.context import Actor
from app.platform.security.policies import actor_capabilities
from app.platform.security.roles import Role, role_display_name

router = APIRouter()
router.include_router(jobs_router)
router.include_router(history_router)
router.include_router(lien_rights_router)
router.include_router(commissions_router)
router.include_router(team_router)

METRICS_READER_ROLES = frozenset({Role.OWNER, Role.ADMIN})


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
def me(actor: Actor = Depends(get_current_actor)) -> dict[str, object]:
    return {
        "user_id": actor.user_id,
        "role": actor.role.value,
        "role_display_name": role_display_name(actor.role),
        "team_lead_id": actor.team_lead_id,
        "is_active": actor.is_active,
        "capabilities": actor_capabilities(actor).granted(),
    }


@router.get("/metrics", tags=["system"])
def metrics(actor: Actor = Depends(get_current_actor)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if not actor.is_active or actor.role not in METRICS_READER_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing role: owner or admin")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
