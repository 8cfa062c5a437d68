from __future__ import annotations

from ratewarden.api.routes.decisions import router as decisions_router
from ratewarden.api.routes.health import router as health_router
from ratewarden.api.routes.policies import router as policies_router

__all__ = ["decisions_router", "health_router", "policies_router"]
