import logging
from importlib import metadata

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.privacy_gateway.api.router import router as documents_router
from src.privacy_gateway.api.schemas import HealthResponse
from src.privacy_gateway.dependencies import get_gateway_settings
from src.privacy_gateway.results import Err, ErrorKind

logger = logging.getLogger(__name__)

try:
    version = metadata.version("privacy-gateway")
except metadata.PackageNotFoundError:
    version = "0.1.0"

settings = get_gateway_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Privacy Gateway API",
    version=version,
    description="OSCAL SSP and RoPA documents proposed as pull requests to a data repository.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.allow_origin],
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["content-type", "authorization", "x-api-key"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and missing parameters are validation failures."""
    error = Err(ErrorKind.VALIDATION_FAILED, str(exc.errors()))
    return JSONResponse(status_code=400, content=error.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        kind = ErrorKind.NOT_FOUND if exc.status_code == 404 else ErrorKind.SERVER_ERROR
        content = Err(kind, str(exc.detail)).to_dict()
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last-resort boundary: any unexpected error becomes a server_error result."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = Err(ErrorKind.SERVER_ERROR, str(exc) or exc.__class__.__name__)
    return JSONResponse(status_code=500, content=error.to_dict())


@app.get("/health", response_model=HealthResponse)
@app.get("/healthz", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(mode=get_gateway_settings().mode)


# Include routers
app.include_router(documents_router, prefix="/api", tags=["documents"])
