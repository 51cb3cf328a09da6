from .auth import router as auth_router
from .models import router as models_router

__all__ = ["auth_router", "models_router"]
