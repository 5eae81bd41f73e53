from fastapi import APIRouter

from app.api.access_requests import router as access_requests_router
from app.api.invites import router as invites_router
from app.api.rooms import router as rooms_router

router = APIRouter()

router.include_router(rooms_router)
router.include_router(access_requests_router)
router.include_router(invites_router)


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Welcome to the Study Rooms API"}
