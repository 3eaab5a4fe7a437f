"""
API Routers
===========
FastAPI routers for the AssetLogix backend.
"""

from .auth import router as auth_router
from .collaboration import router as collaboration_router
from .documents import router as documents_router
from .equipment import router as equipment_router
from .folders import router as folders_router
from .maintenance import router as maintenance_router
from .project_equipment import router as project_equipment_router
from .projects import router as projects_router
from .roles import router as roles_router
from .system import router as system_router
from .uploads import router as uploads_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "collaboration_router",
    "documents_router",
    "equipment_router",
    "folders_router",
    "maintenance_router",
    "project_equipment_router",
    "projects_router",
    "roles_router",
    "system_router",
    "uploads_router",
    "users_router",
]
