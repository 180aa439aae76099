"""
One row per marketplace holding credential material and connectivity state.

Field meaning is marketplace specific: Amazon keeps its AWS region code in
api_url and the LWA access token in access_token, WooCommerce keeps the
store URL in api_url and consumer key/secret in api_key/api_secret.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from marketsync.database import Base
from marketsync.core.enums import Marketplace


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Connection(Base):
    __tablename__ = "connections"

    id = Column(Integer, primary_key=True)
    marketplace = Column(String, unique=True, nullable=False)

    api_url = Column(String, nullable=True)
    api_key = Column(String, nullable=True)
    api_secret = Column(String, nullable=True)
    access_token = Column(String, nullable=True)
    refresh_token = Column(String, nullable=True)
    user_id = Column(String, nullable=True)

    is_connected = Column(Boolean, nullable=False, default=False)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def marketplace_enum(self) -> Marketplace:
        return Marketplace.parse(self.marketplace)

    def seconds_until_expiry(self, now: datetime = None) -> Optional[float]:
        expires_at = as_utc(self.token_expires_at)
        if expires_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (expires_at - now).total_seconds()

    def is_usable(self, now: datetime = None) -> bool:
        """Adapters may only be invoked for connected rows with a live token."""
        if not self.is_connected:
            return False
        remaining = self.seconds_until_expiry(now)
        if remaining is not None and remaining <= 0:
            return False
        if self.marketplace_enum.uses_oauth and not self.access_token:
            return False
        return True

    def __repr__(self):
        return f"<Connection(marketplace='{self.marketplace}', connected={self.is_connected})>"
