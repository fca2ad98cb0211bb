"""
api.routes — one router for the proxy, sites, analysis session and search.

Mounted by app.py under ``/api``.
"""

from fastapi import APIRouter

from api.routes.analyze import router as analyze_router
from api.routes.sites import router as sites_router
from api.routes.analysis import router as analysis_router
from api.routes.search import router as search_router

router = APIRouter()

router.include_router(analyze_router)
router.include_router(sites_router)
router.include_router(analysis_router)
router.include_router(search_router)
