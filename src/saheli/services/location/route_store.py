"""
Route Persistence

Keeps the single destination-sharing record of each user. Starting a new
destination overwrites the previous one; stopping clears its active flag.
"""

import dataclasses
import logging
from datetime import datetime, timezone
from typing import Optional

from saheli.core.database import DatabaseManager, DatabaseError
from saheli.core.identity import AuthSession
from saheli.models.safety import RouteShare, StoreResult


class RouteStore:
    """Persists the active route share of each user"""

    def __init__(self, db: DatabaseManager, auth: AuthSession):
        self.logger = logging.getLogger(__name__)
        self.db = db
        self.auth = auth

    async def save_route_data(self, route: RouteShare) -> StoreResult:
        """Upsert the current user's route share"""
        user_id = await self.auth.get_user_id()
        if not user_id:
            self.logger.debug("Skipping route save, no authenticated user")
            return StoreResult.unauthenticated()

        route = dataclasses.replace(route, user_id=user_id)

        try:
            self.db.upsert('route_shares', route.to_row(), key_columns=('user_id',))
            return StoreResult.success(route)

        except DatabaseError as e:
            self.logger.error(f"Failed to save route for user {user_id}: {e}")
            return StoreResult.unavailable(e)

    async def get_route_data(self) -> Optional[RouteShare]:
        """Get the current user's active route share, if any"""
        user_id = await self.auth.get_user_id()
        if not user_id:
            return None

        try:
            rows = self.db.execute_query(
                "SELECT * FROM route_shares WHERE user_id = ? AND is_active = ?",
                (user_id, True)
            )
            return RouteShare.from_row(rows[0]) if rows else None

        except DatabaseError as e:
            self.logger.error(f"Failed to get route for user {user_id}: {e}")
            return None

    async def start_route(self, destination: str) -> StoreResult:
        """Replace the user's route share with a new active destination"""
        route = RouteShare(
            destination=destination,
            start_time=datetime.now(timezone.utc),
            is_active=True
        )
        return await self.save_route_data(route)

    async def stop_route(self) -> StoreResult:
        """Clear the active flag on the user's current route, if there is one"""
        if not await self.auth.get_user_id():
            return StoreResult.unauthenticated()

        current = await self.get_route_data()
        if current is None:
            return StoreResult.success()

        return await self.save_route_data(dataclasses.replace(current, is_active=False))
