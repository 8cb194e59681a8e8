from datetime import datetime, timezone

from fastapi import APIRouter

from blogdata.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/", response_model=HealthResponse)
@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok",
        message="Store relay is running",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
