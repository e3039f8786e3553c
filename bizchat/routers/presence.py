from fastapi import APIRouter, Depends

from bizchat.schemas.auth import Identity
from bizchat.services.delivery_service import LiveDelivery
from bizchat.utils.dependencies import get_current_user, get_delivery


router = APIRouter(prefix="/presence", tags=["chat"])


@router.get("/{user_id}")
async def presence(user_id: str, current_user: Identity = Depends(get_current_user), delivery: LiveDelivery = Depends(get_delivery)):
    """Online when the user holds a live handle here or a presence key on the bus."""
    online = await delivery.is_online(user_id)
    return {"success": True, "data": {"userId": user_id, "online": online}}
