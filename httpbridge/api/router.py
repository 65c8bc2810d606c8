from fastapi import APIRouter

from httpbridge.api.fetch.routes import router as fetch_router

router = APIRouter()
router.include_router(fetch_router)
