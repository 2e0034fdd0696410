import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from server.config import config
from server.database import engine, Base
from server.errors import AuthError, CooldownActive
from server.routes import router
from server.routes.prometheus import metrics_middleware, record_auth_failure

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# =========================================================
# FASTAPI APP
# =========================================================

app = FastAPI(title="TaskPilot API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register Prometheus middleware
app.middleware("http")(metrics_middleware)

# Include API Router
app.include_router(router)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    record_auth_failure(exc.code)
    headers = None
    if isinstance(exc, CooldownActive):
        headers = {"Retry-After": str(exc.seconds_remaining)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.get("/health")
def health():
    return {"status": "ok"}

# =========================================================
# STARTUP / SHUTDOWN
# =========================================================
@app.on_event("startup")
def on_startup():
    logger.info("Creating database tables if not exist...")
    Base.metadata.create_all(bind=engine)

    if config.RUN_REMINDER_SCHEDULER:
        from reminder_worker.scheduler import start_scheduler
        start_scheduler()


@app.on_event("shutdown")
def on_shutdown():
    if config.RUN_REMINDER_SCHEDULER:
        from reminder_worker.scheduler import stop_scheduler
        stop_scheduler()
