from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from apps.api.app.api.deps import get_current_user
from apps.api.app.db.session import get_db
from apps.api.app.models.user import User
from apps.api.app.schemas.push import (
    PushSubscriptionDelete,
    PushSubscriptionIn,
    PushSubscriptionOut,
)
from apps.api.app.services.push import delete_subscription, upsert_subscription

router = APIRouter(prefix="/users", tags=["users"])


class UserOut(BaseModel):
    id: str
    email: str
    first_name: str | None = None
    role: str

    class Config:
        from_attributes = True


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/push-subscriptions", response_model=PushSubscriptionOut)
def subscribe_push(
    payload: PushSubscriptionIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return upsert_subscription(
        db,
        user_id=current_user.id,
        endpoint=payload.endpoint,
        p256dh=payload.keys.p256dh,
        auth=payload.keys.auth,
    )


@router.delete("/push-subscriptions")
def unsubscribe_push(
    payload: PushSubscriptionDelete,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    removed = delete_subscription(db, user_id=current_user.id, endpoint=payload.endpoint)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found",
        )
    return {"success": True}
