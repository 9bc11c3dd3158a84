import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from botocore.exceptions import ClientError

from eventboard.config import get_settings
from eventboard.exceptions import ServiceError
from eventboard.routers import categories, events, users

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Event Board API",
    version="1.0.0",
    description="Event listings with admin review, participation and categories",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS for docs UI
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(ClientError)
async def store_error_handler(request: Request, exc: ClientError):
    logger.error(
        "Store failure on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(status_code=500, content=ServiceError("Internal server error").to_dict())


# Include routers
app.include_router(events.router)
app.include_router(categories.router)
app.include_router(users.router)


@app.get("/")
def read_root():
    return {"message": "Event Board API", "status": "running"}
