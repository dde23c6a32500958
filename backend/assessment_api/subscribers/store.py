import logging
from datetime import datetime, timedelta

from sqlalchemy import DateTime, String, case, cast, func, literal, or_, select, true
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assessment_api.models.subscriber import Subscriber
from assessment_api.shared.exceptions import SubscriberStoreError
from assessment_api.shared.interfaces import SubscriberRecord, SubscriberStore, format_timestamp

logger = logging.getLogger(__name__)

# Values the timestamptz cast accepts; anything else is treated as stale
ISO_TIMESTAMP_PATTERN = (
    r"^\d{4}-((0[1-9]|1[0-2])-(0[1-9]|1\d|2[0-8])|(0[13-9]|1[0-2])-(29|30)|(0[13578]|1[02])-31|02-29)"
    r"[T ]([01]\d|2[0-3]):[0-5]\d(:[0-5]\d(\.\d{1,6})?)?"
    r"(Z|[+-]\d{2}(:?\d{2})?)?$"
)


def build_claim_statement(
    email: str,
    verification_token: str,
    lead_magnet: str,
    generated_at: datetime,
    window: timedelta,
):
    """Upsert keyed on email that only advances a stale or missing timestamp."""
    stamp = format_timestamp(generated_at)
    cutoff = generated_at - window

    stmt = insert(Subscriber).values(
        email=email,
        verification_token=verification_token,
        lead_magnet_generated={lead_magnet: stamp},
    )
    stored = Subscriber.lead_magnet_generated[lead_magnet].astext
    merged = func.coalesce(Subscriber.lead_magnet_generated, cast(literal("{}", String), JSONB)).op("||")(
        stmt.excluded.lead_magnet_generated
    )
    return stmt.on_conflict_do_update(
        index_elements=[Subscriber.email],
        set_={
            "verification_token": stmt.excluded.verification_token,
            "lead_magnet_generated": merged,
            "updated_at": func.now(),
        },
        where=or_(
            stored.is_(None),
            # CASE keeps Postgres from casting a value that failed the pattern
            case(
                (stored.regexp_match(ISO_TIMESTAMP_PATTERN), cast(stored, DateTime(timezone=True)) < cutoff),
                else_=true(),
            ),
        ),
    ).returning(Subscriber.id)


class PostgresSubscriberStore(SubscriberStore):
    """Subscriber store backed by the ``subscribers`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_by_token(self, verification_token: str) -> SubscriberRecord | None:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Subscriber.lead_magnet_generated, Subscriber.email)
                    .where(Subscriber.verification_token == verification_token)
                    .limit(1)
                )
                row = result.first()
        except SQLAlchemyError as e:
            logger.error(f"Subscriber fetch error: {e}")
            raise SubscriberStoreError("Error checking subscriber data", detail=str(e))

        if row is None:
            return None
        return SubscriberRecord(
            email=row.email,
            verification_token=verification_token,
            lead_magnet_generated=dict(row.lead_magnet_generated or {}),
        )

    async def claim_generation(
        self,
        email: str,
        verification_token: str,
        lead_magnet: str,
        generated_at: datetime,
        window: timedelta,
    ) -> bool:
        stmt = build_claim_statement(email, verification_token, lead_magnet, generated_at, window)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                claimed = result.first() is not None
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Subscriber update error: {e}")
            raise SubscriberStoreError("Error updating lead magnet timestamp", detail=str(e))

        if not claimed:
            logger.info(f"Generation window for {email} already held by another request")
        return claimed
