"""User profile database operations."""

from app.core.calculations import with_energy_estimates
from app.core.logging import get_logger
from app.core.schemas_conversation import UserProfile
from app.db.supabase_client import execute_async, get_supabase

logger = get_logger(__name__)


async def get_user_profile(user_id: str) -> UserProfile | None:
    """
    Get a user's stored profile.

    Args:
        user_id: User id (``profiles.id``)

    Returns:
        UserProfile (without derived fields applied), or None if not found

    Raises:
        Exception: If the query fails
    """
    supabase = get_supabase()

    try:
        response = await execute_async(
            supabase.table("profiles").select("*").eq("id", user_id).limit(1)
        )
        if not response.data:
            logger.info(f"No stored profile for user {user_id}")
            return None
        return UserProfile.model_validate(response.data[0])

    except Exception as e:
        logger.error(f"Failed to get profile for user {user_id}: {e}")
        raise


def merge_guest_profile(
    stored: UserProfile | None, guest: UserProfile | None
) -> UserProfile | None:
    """
    Overlay guest-supplied fields onto a stored profile.

    Guest values only fill fields the stored profile is missing; with no
    stored profile the guest data is used alone.
    """
    if stored is None:
        return guest
    if guest is None:
        return stored

    missing = {
        field: value
        for field, value in guest.model_dump(exclude={"bmr", "tdee"}).items()
        if value is not None and getattr(stored, field) is None
    }
    return stored.model_copy(update=missing) if missing else stored


async def load_profile(user_id: str | None, guest: UserProfile | None = None) -> UserProfile | None:
    """
    Load, merge and derive a profile for one turn.

    BMR/TDEE are always recomputed from the merged fields.
    """
    stored = await get_user_profile(user_id) if user_id else None
    profile = merge_guest_profile(stored, guest)
    if profile is None:
        return None
    return with_energy_estimates(profile)
