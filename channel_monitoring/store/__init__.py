"""Channel store access."""

from .channels import Channel, ChannelRepository, mask_secret
from .database import abilities_table, channels_table, create_engine_from_config

__all__ = [
    "Channel",
    "ChannelRepository",
    "mask_secret",
    "abilities_table",
    "channels_table",
    "create_engine_from_config",
]
