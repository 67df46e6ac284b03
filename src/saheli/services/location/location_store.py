"""
Location Persistence

Stores the latest shared location of each user (one row, upserted on every
fix or toggle) and an append-only history of accepted fixes.
"""

import dataclasses
import logging
from typing import List, Optional

from saheli.core.database import DatabaseManager, DatabaseError
from saheli.core.identity import AuthSession
from saheli.models.safety import LocationShare, LocationHistoryEntry, StoreResult


class LocationStore:
    """Persists location shares and location history"""

    def __init__(self, db: DatabaseManager, auth: AuthSession):
        self.logger = logging.getLogger(__name__)
        self.db = db
        self.auth = auth

    async def save_location_data(self, share: LocationShare) -> StoreResult:
        """
        Upsert the current user's location share

        Args:
            share: Location to store; its user_id is taken from the session

        Returns:
            StoreResult with the stored share on success
        """
        user_id = await self.auth.get_user_id()
        if not user_id:
            self.logger.debug("Skipping location save, no authenticated user")
            return StoreResult.unauthenticated()

        share = dataclasses.replace(share, user_id=user_id)

        try:
            self.db.upsert('location_shares', share.to_row(), key_columns=('user_id',))
            return StoreResult.success(share)

        except DatabaseError as e:
            self.logger.error(f"Failed to save location for user {user_id}: {e}")
            return StoreResult.unavailable(e)

    async def save_location_history(self, entry: LocationHistoryEntry) -> StoreResult:
        """Append one history row; failures are logged, never raised"""
        user_id = await self.auth.get_user_id()
        if not user_id:
            self.logger.debug("Skipping location history, no authenticated user")
            return StoreResult.unauthenticated()

        try:
            self.db.execute_update(
                """
                INSERT INTO location_history (user_id, latitude, longitude, timestamp, accuracy, speed)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, entry.latitude, entry.longitude, entry.timestamp.isoformat(),
                 entry.accuracy, entry.speed)
            )
            return StoreResult.success(dataclasses.replace(entry, user_id=user_id))

        except DatabaseError as e:
            self.logger.error(f"Failed to save location history for user {user_id}: {e}")
            return StoreResult.unavailable(e)

    async def fetch_location_data(self) -> StoreResult:
        """
        Read the current user's location share

        Returns:
            StoreResult whose data is the share, or None when no row exists;
            STORE_UNAVAILABLE when the read itself failed
        """
        user_id = await self.auth.get_user_id()
        if not user_id:
            return StoreResult.unauthenticated()

        try:
            rows = self.db.execute_query(
                "SELECT * FROM location_shares WHERE user_id = ?",
                (user_id,)
            )
        except DatabaseError as e:
            self.logger.error(f"Failed to get location for user {user_id}: {e}")
            return StoreResult.unavailable(e)

        return StoreResult.success(LocationShare.from_row(rows[0]) if rows else None)

    async def get_location_data(self) -> Optional[LocationShare]:
        """Get the current user's location share, or None if absent or unreadable"""
        result = await self.fetch_location_data()
        return result.data if result.ok else None

    async def get_location_history(self, limit: int = 100) -> List[LocationHistoryEntry]:
        """Get the current user's most recent history entries, newest first"""
        user_id = await self.auth.get_user_id()
        if not user_id:
            return []

        try:
            rows = self.db.execute_query(
                """
                SELECT * FROM location_history WHERE user_id = ?
                ORDER BY timestamp DESC, id DESC LIMIT ?
                """,
                (user_id, limit)
            )
            return [LocationHistoryEntry.from_row(row) for row in rows]

        except DatabaseError as e:
            self.logger.error(f"Failed to get location history for user {user_id}: {e}")
            return []
