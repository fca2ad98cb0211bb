"""
API dependencies — the per-process forage workspace.

Routes receive services through ``Depends`` so tests can swap the whole
workspace with ``app.dependency_overrides[get_workspace]``.
"""

from __future__ import annotations

from fastapi import Depends

from modules.forage_analysis import ForageWorkspace, build_workspace
from modules.forage_proxy import VisionModel
from modules.quota import QuotaCounter

_workspace: ForageWorkspace | None = None


def get_workspace() -> ForageWorkspace:
    global _workspace
    if _workspace is None:
        _workspace = build_workspace()
    return _workspace


def get_quota(ws: ForageWorkspace = Depends(get_workspace)) -> QuotaCounter:
    return ws.quota


def get_vision_model(ws: ForageWorkspace = Depends(get_workspace)) -> VisionModel:
    return ws.model


async def shutdown_workspace() -> None:
    """Cancel any running analysis and release the map surface."""
    global _workspace
    if _workspace is None:
        return
    await _workspace.controller.aclose()
    await _workspace.surface.aclose()
    _workspace = None
