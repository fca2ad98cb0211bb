"""
Api-Scout — FastAPI Entry Point

Start with:  uvicorn app:app --reload
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

load_dotenv()

from api.dependencies import shutdown_workspace  # noqa: E402
from api.routes import router  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(name)s — %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await shutdown_workspace()


app = FastAPI(
    title="Api-Scout API",
    description="Hive site planning — AI forage assessment of a bee colony's flight radius",
    version="0.1.0",
    lifespan=lifespan,
)


# ---- Error bodies are always {"error": "..."} ---- #

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())[1:])
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    message = "Missing or invalid parameters: " + "; ".join(problems)
    logger.info("Rejected %s %s — %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


@app.get("/")
def root(request: Request):
    """Quick check that the server is up. Links use the same host/port you used to connect."""
    base = str(request.base_url).rstrip("/")
    return {
        "message": "Api-Scout API is running",
        "docs": f"{base}/docs",
        "health": f"{base}/api/health",
        "analyze": f"{base}/api/analyze",
    }


app.include_router(router, prefix="/api")
