"""Communication preference lookup for trigger actions."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import CommunicationPreference
from db.models.trigger import TriggerAction
from db.models.user import User

_EMAIL_OK = {CommunicationPreference.EMAIL.value, CommunicationPreference.BOTH.value}
_SMS_OK = {CommunicationPreference.SMS.value, CommunicationPreference.BOTH.value}


class PreferenceLookup:
    """Decides whether a user's channel opt-ins allow an action.

    Without a user there is nobody to have opted out, so every
    action is allowed.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        user = await self.db.get(User, user_id)
        if user is None or user.is_deleted:
            return None
        return user

    @staticmethod
    def preference_of(user: User) -> str:
        return user.communication_preference or CommunicationPreference.EMAIL.value

    def allows(self, user: Optional[User], action: TriggerAction) -> tuple[bool, Optional[str]]:
        """Return (allowed, skip_reason)."""
        if user is None:
            return True, None
        preference = self.preference_of(user)
        if action.requires_email_preference and preference not in _EMAIL_OK:
            return False, f"User communication preference '{preference}' excludes email"
        if action.requires_sms_preference and preference not in _SMS_OK:
            return False, f"User communication preference '{preference}' excludes SMS"
        return True, None
