"""Shared route dependencies."""
import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


async def require_cron_secret(
    authorization: Optional[str] = Header(None),
    app_settings: Settings = Depends(get_settings),
):
    """Reject the request unless it carries ``Authorization: Bearer <CRON_SECRET>``.

    An unset server secret rejects everything. The response never says which
    check failed.
    """
    secret = app_settings.cron_secret
    expected = f"Bearer {secret}" if secret else ""
    if not secret or not authorization or not hmac.compare_digest(
        authorization.encode(), expected.encode()
    ):
        logger.warning("Unauthorized access attempt on a secret-protected endpoint")
        raise HTTPException(status_code=401, detail="Unauthorized")
