import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_db
from .errors import ReviewError, StoreUnavailableError
from .routers import notifications, review_submissions, submissions

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Archive Review API",
    description="Professor review of artifact uploads and curator applications",
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(review_submissions.router)
app.include_router(submissions.router)
app.include_router(notifications.router)


@app.exception_handler(ReviewError)
async def review_error_handler(request: Request, exc: ReviewError):
    headers = None
    if isinstance(exc, StoreUnavailableError):
        headers = {"Retry-After": "1"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


@app.on_event("startup")
def on_startup():
    init_db()


@app.get("/")
def root():
    return {"message": "Archive Review API is running"}
