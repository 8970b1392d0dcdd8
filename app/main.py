from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from app.api.v1 import (
    auth,
    user,
    project_router,
    task,
    notification,
    admin,
    digest,
    dashboard,
)
from app.core.config import settings
from app.core.database import engine, Base
from app.core.exceptions import TrackerError
from app.services.digest_scheduler import DigestScheduler

# Register every table on Base.metadata before create_all
from app.models import (  # noqa: F401
    notification as notification_model,
    project,
    project_member,
    task as task_model,
    task_attachment,
    task_comment,
    user as user_model,
)
import logging
import time
from fastapi.middleware.cors import CORSMiddleware


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="TeamTrack API", version="1.0.0")

# Include routers
app.include_router(auth.router, prefix="/api/v1/auth", tags=["authentication"])
app.include_router(user.router, prefix="/api/v1/user", tags=["user"])
app.include_router(project_router.router, prefix="/api/v1/projects", tags=["project"])
app.include_router(task.router, prefix="/api/v1/tasks", tags=["task"])
app.include_router(
    notification.router, prefix="/api/v1/notifications", tags=["notification"]
)
app.include_router(admin.router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(digest.router, prefix="/api/v1/digests", tags=["digest"])
app.include_router(dashboard.router, prefix="/api/v1/dashboard", tags=["dashboard"])

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_url or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "reason": exc.reason},
    )


digest_scheduler = DigestScheduler(settings.digest_send_time)


@app.on_event("startup")
async def startup_event():
    # Wait for database to be ready and create tables
    max_retries = 30
    retry_count = 0

    while retry_count < max_retries:
        try:
            # Try to create tables
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables created successfully")
            break
        except Exception as e:
            retry_count += 1
            logger.warning(
                f"Database connection attempt {retry_count} failed: {str(e)}"
            )
            if retry_count >= max_retries:
                logger.error("Max retries reached. Could not connect to database.")
                raise e
            time.sleep(2)

    if settings.digest_enabled:
        digest_scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    await digest_scheduler.stop()


@app.get("/")
def read_root():
    return {"message": "TeamTrack API", "version": "1.0.0"}


@app.get("/health")
def health_check():
    try:
        # Check database connection
        from sqlalchemy import text

        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Database unhealthy: {str(e)}")
