from fastapi import APIRouter

from .forms import router as forms_router
from .health import router as health_router
from .workflow import router as workflow_router


api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(forms_router)
api_router.include_router(workflow_router)
