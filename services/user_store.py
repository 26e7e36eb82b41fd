"""
User-side lookups for the notification dispatcher.

- UserStore.get(user_id): contact details + active push tokens, or None
- UserStore.list_active_ids(marketing_only): broadcast audience
- PreferenceStore: read (defaults when absent) and lazy upsert of channel opt-outs
- DeviceTokenStore: register / deactivate push tokens
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from models.db_models import DeviceToken, NotificationPreference, User
from models.notification import Preferences, UserContact
import logging

logger = logging.getLogger(__name__)


class UserStore:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get(self, user_id: str) -> Optional[UserContact]:
        async with self.session_maker() as session:
            user = (await session.execute(
                select(User).where(User.user_id == user_id).where(User.is_active == True)  # noqa: E712
            )).scalar_one_or_none()
            if user is None:
                return None
            tokens = (await session.execute(
                select(DeviceToken.token)
                .where(DeviceToken.user_id == user_id)
                .where(DeviceToken.is_active == True)  # noqa: E712
                .order_by(DeviceToken.id)
            )).scalars().all()
        return UserContact(user_id=user.user_id, name=user.name, email=user.email, phone=user.phone, devices=list(tokens))

    async def list_active_ids(self, marketing_only: bool = False) -> List[str]:
        """Active user ids; with marketing_only, just those who opted in to marketing."""
        query = select(User.user_id).where(User.is_active == True)  # noqa: E712
        if marketing_only:
            query = query.join(
                NotificationPreference, NotificationPreference.user_id == User.user_id
            ).where(NotificationPreference.marketing == True)  # noqa: E712
        async with self.session_maker() as session:
            return list((await session.execute(query.order_by(User.id))).scalars().all())


class PreferenceStore:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get(self, user_id: str) -> Preferences:
        async with self.session_maker() as session:
            row = (await session.execute(
                select(NotificationPreference).where(NotificationPreference.user_id == user_id)
            )).scalar_one_or_none()
        if row is None:
            return Preferences()
        return Preferences(email=row.email, push=row.push, sms=row.sms, marketing=row.marketing)

    async def update(
        self,
        user_id: str,
        email: Optional[bool] = None,
        push: Optional[bool] = None,
        sms: Optional[bool] = None,
        marketing: Optional[bool] = None,
    ) -> Preferences:
        """
        Apply the given flags; flags left as None keep their current value
        (or the default when the row is created here).
        """
        changes = {k: v for k, v in {"email": email, "push": push, "sms": sms, "marketing": marketing}.items()
                   if v is not None}
        async with self.session_maker() as session:
            try:
                async with session.begin():
                    row = (await session.execute(
                        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
                    )).scalar_one_or_none()
                    if row is None:
                        row = NotificationPreference(user_id=user_id, **{**Preferences().model_dump(), **changes})
                        session.add(row)
                    else:
                        for key, value in changes.items():
                            setattr(row, key, value)
            except IntegrityError:
                # created concurrently; apply the changes to the row that won
                logger.info("Preference row for %s created concurrently; retrying as update", user_id)
                async with session.begin():
                    if changes:
                        await session.execute(
                            update(NotificationPreference)
                            .where(NotificationPreference.user_id == user_id)
                            .values(**changes)
                        )
        return await self.get(user_id)


class DeviceTokenStore:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def register(self, user_id: str, token: str, platform: str) -> None:
        """Upsert by token: a token moves to the latest user that registers it."""
        async with self.session_maker() as session:
            async with session.begin():
                row = (await session.execute(
                    select(DeviceToken).where(DeviceToken.token == token)
                )).scalar_one_or_none()
                if row is None:
                    session.add(DeviceToken(user_id=user_id, token=token, platform=platform, is_active=True))
                else:
                    row.user_id = user_id
                    row.platform = platform
                    row.is_active = True
                    row.last_used = datetime.utcnow()
        logger.info("Device token registered for user=%s platform=%s", user_id, platform)

    async def deactivate(self, user_id: str, token: str) -> bool:
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    update(DeviceToken)
                    .where(DeviceToken.token == token)
                    .where(DeviceToken.user_id == user_id)
                    .values(is_active=False)
                )
        return (result.rowcount or 0) > 0
