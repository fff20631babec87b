from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tracker import get_routers
from tracker.config import APP_TITLE, LOG_LEVEL
from tracker.errors import ExternalServiceError, NotFoundError, TrackerError, ValidationError
from tracker.state import get_session
from tracker.utils import get_ip_address

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("protrack")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # load persisted state and sweep overdue appointments once per process
    session = app.dependency_overrides.get(get_session, get_session)()
    logger.info("Session ready: %d subjects, %d appointments",
                len(session.snapshot.subjects), len(session.snapshot.appointments))
    yield


app = FastAPI(title=APP_TITLE, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten if needed
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, exc: TrackerError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": exc.code, "message": exc.message})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(422, exc)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, exc)


@app.exception_handler(ExternalServiceError)
async def external_error_handler(request: Request, exc: ExternalServiceError):
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error(503, exc)


@app.get("/health")
async def health():
    return {"ok": True, "app": APP_TITLE}


# Mount all routers from tracker/
for router in get_routers():
    app.include_router(router)

if __name__ == "__main__":
    import uvicorn

    host_ip = "0.0.0.0"
    port = int(os.getenv("PORT", "5000"))

    print("\n" + "=" * 50)
    print("Server is running on:")
    print(f"Local URL:     http://localhost:{port}")
    print(f"Network URL:   http://{get_ip_address()}:{port}")
    print(f"API Docs URL:  http://{get_ip_address()}:{port}/docs")
    print("=" * 50 + "\n")

    uvicorn.run("fastapi_app:app", host=host_ip, port=port, reload=True)
