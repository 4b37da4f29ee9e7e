from __future__ import annotations

from backend.pacelab.repositories.common import utc_now_iso
from backend.pacelab.repositories.database import Database


class TokenRepository:
    """One delegated refresh token per owner.

    Every method is a single statement, so concurrent clears and upserts for
    the same owner never interleave into a corrupt row.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def get_refresh_token(self, owner_id: str) -> str | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT refresh_token FROM oauth_tokens WHERE owner_id = ?",
                (owner_id,),
            ).fetchone()

        if row is None or row["refresh_token"] is None:
            return None
        return str(row["refresh_token"])

    def save_refresh_token(self, owner_id: str, refresh_token: str) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO oauth_tokens (owner_id, refresh_token, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(owner_id) DO UPDATE SET
                    refresh_token = excluded.refresh_token,
                    updated_at = excluded.updated_at
                """,
                (owner_id, refresh_token, utc_now_iso()),
            )

    def clear_refresh_token(self, owner_id: str) -> None:
        with self._db.connection() as conn:
            conn.execute("DELETE FROM oauth_tokens WHERE owner_id = ?", (owner_id,))
