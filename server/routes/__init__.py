from fastapi import APIRouter
from . import auth, tasks, users, prometheus

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(prometheus.router, prefix="/metrics", tags=["Metrics"])
