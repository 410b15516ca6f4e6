from fastapi import APIRouter

from dependencies.engines import SettingsDep
from schemas.api import ApiResponse


router = APIRouter()


@router.get("/health", response_model=ApiResponse[dict[str, str]])
def health_check(settings: SettingsDep) -> ApiResponse[dict[str, str]]:
    """Health check endpoint for monitoring and load balancer health checks."""
    return ApiResponse(
        success=True,
        data={
            "status": "healthy",
            "message": f"{settings.APP_NAME} API is running",
            "llm_provider": settings.LLM_PROVIDER,
        },
        message="Health check successful",
    )
