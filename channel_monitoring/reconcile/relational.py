"""Transactional write-back into the gateway database."""

from __future__ import annotations

import structlog
from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..errors import ReconcileError
from ..store.channels import REFRESH_CHANNEL_NAME
from ..store.database import abilities_table, channels_table
from .base import Reconciler, join_models


logger = structlog.get_logger(__name__)


class RelationalReconciler(Reconciler):
    """Rewrites the channel row and its ability rows in one transaction.

    Statements, in order: update the channel's model list, purge ``refresh``
    channel rows, hard-delete abilities for models no longer offered, and
    re-enable abilities for models that are. Any failure rolls back all four.
    """

    name = "relational"

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def write_models(self, channel_id: int, models: list[str]) -> None:
        channels = channels_table.c
        abilities = abilities_table.c

        try:
            async with self.engine.begin() as conn:
                await conn.execute(
                    update(channels_table)
                    .where(channels.id == channel_id)
                    .values(models=join_models(models))
                )
                await conn.execute(
                    delete(channels_table).where(channels.name == REFRESH_CHANNEL_NAME)
                )
                if models:
                    await conn.execute(
                        delete(abilities_table).where(
                            abilities.channel_id == channel_id,
                            abilities.model.not_in(models),
                        )
                    )
                    await conn.execute(
                        update(abilities_table)
                        .where(abilities.channel_id == channel_id, abilities.model.in_(models))
                        .values(enabled=1)
                    )
                else:
                    # NOT IN of an empty set matches every row of the channel.
                    await conn.execute(delete(abilities_table).where(abilities.channel_id == channel_id))
        except SQLAlchemyError as e:
            raise ReconcileError(f"Database update failed for channel {channel_id}: {e}", channel_id) from e

        logger.info("Channel models updated", channel_id=channel_id, backend=self.name, models=models)
