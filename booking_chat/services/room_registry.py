# booking_chat/services/room_registry.py

from __future__ import annotations

from typing import Dict, Set, Tuple
import logging

from booking_chat.models.models import Role

logger = logging.getLogger(__name__)

# ============================================================================
# ROOM REGISTRY
# ============================================================================

class RoomRegistry:
    """
    In-memory room membership for booking chat rooms.

    A room is nothing more than the set of connections currently joined to a
    booking id. There is no explicit room object: the first join creates the
    entry and the last leave deletes it, so an empty room is simply absent.

    Data Structures:
        rooms: Maps booking_id -> Set of connection ids in that room
               Example: {42: {"c-1", "c-2"}}

        connection_rooms: Maps connection id -> Set of booking ids it has joined
                          Example: {"c-1": {42}}

        member_roles: Maps (booking_id, connection id) -> Role (for logging / health)

    The registry has no view of the transport. Whoever owns the connection
    (the session gateway) must call ``leave`` for every room when it drops.
    """

    def __init__(self) -> None:
        self.rooms: Dict[int, Set[str]] = {}
        self.connection_rooms: Dict[str, Set[int]] = {}
        self.member_roles: Dict[Tuple[int, str], Role] = {}

    def join(self, booking_id: int, role: Role, connection_id: str) -> None:
        """
        Add a connection to a booking's room.

        Idempotent: joining again with the same connection and booking leaves
        membership unchanged.
        """
        members = self.rooms.setdefault(booking_id, set())
        if connection_id in members:
            return

        members.add(connection_id)
        self.connection_rooms.setdefault(connection_id, set()).add(booking_id)
        self.member_roles[(booking_id, connection_id)] = role

        logger.info(
            "→ %s %s joined booking %s (%d members)",
            role.value, connection_id, booking_id, len(members),
        )

    def leave(self, booking_id: int, role: Role | None, connection_id: str) -> bool:
        """
        Remove a connection from a booking's room.

        Safe to call for a connection that is not a member (no-op).

        Returns:
            True if a membership was actually removed
        """
        members = self.rooms.get(booking_id)
        if not members or connection_id not in members:
            return False

        members.discard(connection_id)
        if not members:
            del self.rooms[booking_id]

        joined = self.connection_rooms.get(connection_id)
        if joined is not None:
            joined.discard(booking_id)
            if not joined:
                del self.connection_rooms[connection_id]

        stored_role = self.member_roles.pop((booking_id, connection_id), role)
        logger.info(
            "← %s %s left booking %s (%d members)",
            stored_role.value if stored_role else "unknown",
            connection_id, booking_id, len(members),
        )
        return True

    def members_of(self, booking_id: int) -> Set[str]:
        """Snapshot of the connections in a booking's room."""
        return set(self.rooms.get(booking_id, ()))

    def rooms_of(self, connection_id: str) -> Set[int]:
        """Snapshot of the booking ids a connection has joined."""
        return set(self.connection_rooms.get(connection_id, ()))

    def role_of(self, booking_id: int, connection_id: str) -> Role | None:
        return self.member_roles.get((booking_id, connection_id))

    def get_rooms_info(self) -> Dict[int, dict]:
        """
        Get information about all active rooms.

        Returns:
            Dict mapping booking_id to member count and roles present
        """
        result: Dict[int, dict] = {}
        for booking_id, connections in self.rooms.items():
            roles = sorted(
                {self.member_roles[(booking_id, c)].value for c in connections
                 if (booking_id, c) in self.member_roles}
            )
            result[booking_id] = {"member_count": len(connections), "roles": roles}
        return result
