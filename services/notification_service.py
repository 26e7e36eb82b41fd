# services/notification_service.py
"""
Multi-channel notification dispatcher.

dispatch() fans one logical event out to the requested channels:
  1. load the user's contact details and active device tokens
  2. drop channels the user opted out of (IN_APP is always kept)
  3. render per-channel content from the template table
  4. send to every surviving channel concurrently; one channel failing or
     raising never affects the others
  5. store one NotificationRecord per attempted channel

Also serves the in-app inbox (IN_APP records) for the notifications API.
broadcast() runs dispatch() for every active user in fixed-size batches.
"""
import asyncio
import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from models.db_models import DeliveryStatus, NotificationRecord
from models.notification import (
    BroadcastResult,
    Channel,
    ChannelOutcome,
    DispatchRequest,
    DispatchResult,
    EventType,
    RenderedContent,
    UserContact,
)
from services import notification_templates
from services.user_store import PreferenceStore, UserStore

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        senders: Mapping[Channel, Any],
        users: Optional[UserStore] = None,
        preferences: Optional[PreferenceStore] = None,
    ):
        self.session_maker = session_maker
        self.senders = dict(senders)
        self.users = users or UserStore(session_maker)
        self.preferences = preferences or PreferenceStore(session_maker)

    async def dispatch(
        self,
        user_id: str,
        event_type: str,
        channels: Iterable[Channel],
        title: str,
        body: str,
        data: Optional[Mapping[str, Any]] = None,
        recipient: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> DispatchResult:
        """
        Deliver an event to a user. Never raises for delivery problems;
        the returned per-channel outcomes carry them.

        `recipient` overrides the SMS destination only. `overall` is True
        when every attempted channel succeeded (and when none survived the
        preference filter).
        """
        user = await self.users.get(user_id)
        if user is None:
            logger.warning("Dispatch %s skipped: user %s not found", event_type, user_id)
            return DispatchResult(
                overall=False,
                per_channel=[ChannelOutcome(channel=None, success=False, error="User not found")],
            )

        prefs = await self.preferences.get(user_id)
        wanted: List[Channel] = []
        for channel in channels:
            channel = Channel(channel)
            if channel not in wanted:
                wanted.append(channel)
        allowed = [c for c in wanted if prefs.allows(c)]
        skipped = [c.value for c in wanted if c not in allowed]
        if skipped:
            logger.info("User %s opted out of %s for %s", user_id, skipped, event_type)

        text_data = {k: str(v) for k, v in (data or {}).items()}
        contents: Dict[Channel, RenderedContent] = {}
        for channel in allowed:
            content = notification_templates.render(event_type, channel, title, body, text_data)
            if subject and channel == Channel.EMAIL:
                content = content.model_copy(update={"subject": subject})
            contents[channel] = content

        outcomes = await asyncio.gather(*[
            self._send_channel(channel, user, contents[channel], recipient) for channel in allowed
        ])

        await self._record(user_id, event_type, contents, outcomes)

        result = DispatchResult(overall=all(o.success for o in outcomes), per_channel=list(outcomes))
        logger.info(
            "Dispatched %s to user=%s overall=%s channels=%s",
            event_type, user_id, result.overall,
            {o.channel.value: o.success for o in outcomes},
        )
        return result

    async def dispatch_request(self, request: DispatchRequest) -> DispatchResult:
        return await self.dispatch(
            user_id=request.user_id,
            event_type=request.event_type,
            channels=request.channels,
            title=request.title,
            body=request.body,
            data=request.data,
            recipient=request.recipient,
            subject=request.subject,
        )

    async def broadcast(
        self,
        event_type: str,
        channels: Iterable[Channel],
        title: str,
        body: str,
        data: Optional[Mapping[str, Any]] = None,
        batch_size: int = 100,
    ) -> BroadcastResult:
        """
        Dispatch one event to every active user, `batch_size` users at a time.

        PROMOTIONAL events only reach users who opted in to marketing.
        """
        channels = list(channels)
        marketing_only = event_type == EventType.PROMOTIONAL.value
        user_ids = await self.users.list_active_ids(marketing_only=marketing_only)

        results: List[DispatchResult] = []
        for start in range(0, len(user_ids), batch_size):
            batch = user_ids[start:start + batch_size]
            results.extend(await asyncio.gather(*[
                self.dispatch(user_id, event_type, channels, title, body, data=data) for user_id in batch
            ]))

        succeeded = sum(1 for r in results if r.overall)
        logger.info(
            "Broadcast %s to %d user(s): %d ok, %d failed",
            event_type, len(user_ids), succeeded, len(results) - succeeded,
        )
        return BroadcastResult(
            total_users=len(user_ids),
            success_count=succeeded,
            failure_count=len(results) - succeeded,
        )

    async def _send_channel(
        self,
        channel: Channel,
        user: UserContact,
        content: RenderedContent,
        recipient: Optional[str],
    ) -> ChannelOutcome:
        sender = self.senders.get(channel)
        if sender is None:
            return ChannelOutcome(channel=channel, success=False, error="Unsupported channel")
        try:
            if channel == Channel.PUSH:
                return await self._send_push(sender, user, content)

            if channel == Channel.EMAIL:
                target = user.email
                if not target:
                    return ChannelOutcome(channel=channel, success=False, error="No email address")
            elif channel == Channel.SMS:
                target = recipient or user.phone
                if not target:
                    return ChannelOutcome(channel=channel, success=False, error="No phone number")
            else:
                target = user.user_id

            sent = await sender.send(target, content)
            return ChannelOutcome(
                channel=channel,
                success=sent.success,
                error=sent.error,
                message_id=sent.message_id,
                recipient=target,
            )
        except Exception as e:
            logger.exception("Error sending %s notification to user=%s", channel.value, user.user_id)
            return ChannelOutcome(channel=channel, success=False, error=str(e) or e.__class__.__name__)

    async def _send_push(self, sender: Any, user: UserContact, content: RenderedContent) -> ChannelOutcome:
        tokens = list(user.devices)
        if not tokens:
            return ChannelOutcome(channel=Channel.PUSH, success=False, error="No device tokens found")
        batch = await sender.send_multicast(tokens, content)
        return ChannelOutcome(
            channel=Channel.PUSH,
            success=batch.success_count > 0,
            error=f"{batch.failure_count} failures" if batch.failure_count > 0 else None,
            message_id=batch.message_ids[0] if batch.message_ids else None,
            detail=f"{batch.success_count}/{len(tokens)} sent",
            recipient=f"{len(tokens)} device(s)",
        )

    async def _record(
        self,
        user_id: str,
        event_type: str,
        contents: Mapping[Channel, RenderedContent],
        outcomes: Iterable[ChannelOutcome],
    ) -> None:
        now = datetime.utcnow()
        rows = []
        for outcome in outcomes:
            content = contents[outcome.channel]
            rows.append(NotificationRecord(
                user_id=user_id,
                event_type=event_type,
                channel=outcome.channel.value,
                recipient=outcome.recipient,
                subject=content.subject,
                title=content.title,
                body=content.body,
                data=content.data or None,
                status=(DeliveryStatus.SENT if outcome.success else DeliveryStatus.FAILED).value,
                message_id=outcome.message_id,
                detail=outcome.detail,
                error_message=outcome.error,
                sent_at=now if outcome.success else None,
            ))
        if not rows:
            return
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    session.add_all(rows)
        except SQLAlchemyError:
            # delivery already happened; a lost history row must not fail the dispatch
            logger.exception("Failed to store %d notification record(s) for user=%s", len(rows), user_id)

    # ---------------- in-app inbox ----------------

    async def list_notifications(self, user_id: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        base = (
            select(NotificationRecord)
            .where(NotificationRecord.user_id == user_id)
            .where(NotificationRecord.channel == Channel.IN_APP.value)
        )
        async with self.session_maker() as session:
            total = (await session.execute(
                select(func.count()).select_from(base.subquery())
            )).scalar_one()
            unread = (await session.execute(
                select(func.count()).select_from(
                    base.where(NotificationRecord.read_at.is_(None)).subquery()
                )
            )).scalar_one()
            rows = (await session.execute(
                base.order_by(NotificationRecord.created_at.desc(), NotificationRecord.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )).scalars().all()
        return {
            "notifications": list(rows),
            "unread_count": unread,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }

    async def mark_as_read(self, notification_id: str, user_id: str) -> bool:
        """False when the notification does not exist or belongs to someone else."""
        async with self.session_maker() as session:
            async with session.begin():
                row = (await session.execute(
                    select(NotificationRecord)
                    .where(NotificationRecord.id == notification_id)
                    .where(NotificationRecord.user_id == user_id)
                )).scalar_one_or_none()
                if row is None:
                    return False
                if row.read_at is None:
                    row.read_at = datetime.utcnow()
        return True

    async def unread_count(self, user_id: str) -> int:
        async with self.session_maker() as session:
            return (await session.execute(
                select(func.count())
                .select_from(NotificationRecord)
                .where(NotificationRecord.user_id == user_id)
                .where(NotificationRecord.channel == Channel.IN_APP.value)
                .where(NotificationRecord.read_at.is_(None))
            )).scalar_one()
