from fastapi import APIRouter, Depends

from ..deps import get_current_user
from ..models import Profile
from ..schemas import ProfileOut

router = APIRouter()


@router.get("/api/profiles/me", response_model=ProfileOut)
def me(user: Profile = Depends(get_current_user)):
    """The caller's profile, created on first sight of a new token."""
    return ProfileOut.model_validate(user, from_attributes=True)
