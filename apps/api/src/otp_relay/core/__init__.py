"""
Core module - Configuration, database, delivery infrastructure and utilities.
"""

from otp_relay.core.config import get_settings, settings
from otp_relay.core.database import Base, close_db, get_db, init_db
from otp_relay.core.delivery import (
    DeliveryGateway,
    close_delivery_gateway,
    get_delivery_gateway,
    init_delivery_gateway,
)
from otp_relay.core.redis import close_redis, get_redis, init_redis

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Delivery
    "DeliveryGateway",
    "get_delivery_gateway",
    "init_delivery_gateway",
    "close_delivery_gateway",
]
