from fastapi import APIRouter, Depends, HTTPException

from marketsync.core.exceptions import UnsupportedMarketplaceError
from marketsync.dependencies import get_token_refresh
from marketsync.schemas.sync import RefreshResult, TokenStatus
from marketsync.services.token_refresh import TokenRefreshService

router = APIRouter(prefix="/api/tokens", tags=["tokens"])


@router.get("/{marketplace}/status", response_model=TokenStatus)
async def token_status(marketplace: str, token_refresh: TokenRefreshService = Depends(get_token_refresh)):
    try:
        return await token_refresh.get_token_status(marketplace)
    except UnsupportedMarketplaceError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{marketplace}/refresh", response_model=RefreshResult)
async def force_refresh(marketplace: str, token_refresh: TokenRefreshService = Depends(get_token_refresh)):
    try:
        return await token_refresh.force_refresh(marketplace)
    except UnsupportedMarketplaceError as e:
        raise HTTPException(status_code=400, detail=str(e))
