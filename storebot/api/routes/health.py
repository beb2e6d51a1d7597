from fastapi import APIRouter, Depends

from storebot.api.deps import get_container
from storebot.container import Container

router = APIRouter()


@router.get("/")
async def health(container: Container = Depends(get_container)):
    return {
        "status": "ok",
        "message": f"{container.settings.SHOP_NAME} bot running",
        **(await container.health()),
    }
