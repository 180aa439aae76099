from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from marketsync.schemas.base import BaseSchema


class ConnectionCredentials(BaseModel):
    """Adapter credential shape; meaning of each field is marketplace specific"""
    api_url: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user_id: Optional[str] = None
    token_expires_at: Optional[datetime] = None

    @classmethod
    def from_connection(cls, connection) -> "ConnectionCredentials":
        return cls(
            api_url=connection.api_url,
            api_key=connection.api_key,
            api_secret=connection.api_secret,
            access_token=connection.access_token,
            refresh_token=connection.refresh_token,
            user_id=connection.user_id,
            token_expires_at=connection.token_expires_at,
        )


class ConnectionRead(BaseSchema):
    """Connection without secrets"""
    id: int
    marketplace: str
    is_connected: bool
    api_url: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
