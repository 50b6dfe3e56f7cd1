"""
Async database service: credential record and security audit log.
"""
import json
import logging
from typing import Optional, Dict, Any

from interest_finder.core.database import get_pool

logger = logging.getLogger(__name__)


class DatabaseService:
    """Async CRUD for the service tables."""

    # ========== CREDENTIALS ==========

    async def load_credential(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Loads a persisted credential.

        Args:
            key: Credential key (e.g. "facebook_token")

        Returns:
            Dict with token and last_refreshed_at, or None if absent
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT token, last_refreshed_at
                FROM system_credentials
                WHERE key = $1
                """,
                key,
            )
            if row:
                return {"token": row["token"], "last_refreshed_at": row["last_refreshed_at"]}
            return None

    async def save_credential(self, key: str, token: str, last_refreshed_at: float) -> None:
        """
        Upserts the credential record.

        Args:
            key: Credential key
            token: Access token
            last_refreshed_at: Epoch seconds of the refresh
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO system_credentials (key, token, last_refreshed_at, updated_at)
                VALUES ($1, $2, $3, now())
                ON CONFLICT (key) DO UPDATE SET
                    token = EXCLUDED.token,
                    last_refreshed_at = EXCLUDED.last_refreshed_at,
                    updated_at = now()
                """,
                key,
                token,
                last_refreshed_at,
            )
            logger.debug(f"✅ Credential saved: key={key}")

    # ========== SECURITY ALERTS ==========

    async def save_security_alert(self, user_id: str, reason: str, details: Dict[str, Any]) -> int:
        """
        Appends a violation to the audit log. The timestamp is assigned by the server.

        Returns:
            ID of the created row
        """
        pool = await get_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO security_alerts (user_id, reason, details)
                VALUES ($1, $2, $3::jsonb)
                RETURNING id
                """,
                user_id,
                reason,
                json.dumps(details),
            )
            alert_id = row["id"]
            logger.debug(f"✅ Security alert saved: id={alert_id}, user={user_id}, reason={reason}")
            return alert_id


_db_service: Optional[DatabaseService] = None


def get_db_service() -> DatabaseService:
    """
    Returns the DatabaseService singleton.
    """
    global _db_service
    if _db_service is None:
        _db_service = DatabaseService()
    return _db_service
