from fastapi import APIRouter

from plume_server.queues.router import router as jobs_router

router = APIRouter()
router.include_router(jobs_router)
