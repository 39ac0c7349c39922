# File: smartpark/application/user_service.py
"""
User registration, login and booking history

Plays two roles for the core:
- the session layer's account store (register / login / lookup)
- the booking-history collaborator the billing engine appends to
"""

from typing import Dict, List, Optional
import logging

from ..domain.models import User, UserRole

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin"


class UserService:
    """In-memory user accounts keyed by username"""

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._next_user_id = 1
        self.logger = logging.getLogger(self.__class__.__name__)

    def register(
        self,
        username: Optional[str],
        password: str = "",
        role: UserRole = UserRole.USER
    ) -> Optional[User]:
        """
        Create an account
        Returns: the new User, or None for a blank or taken username
        """
        if username is None or not username.strip():
            self.logger.warning("Registration rejected: empty username")
            return None

        if self.find_by_username(username) is not None:
            self.logger.warning(f"Registration rejected: username {username} already taken")
            return None

        user = User(username, password, UserRole(role), user_id=self._next_user_id)
        self._next_user_id += 1
        self._users[username] = user

        self.logger.info(f"Registered {user}")
        return user

    def login(self, username: Optional[str], password: Optional[str]) -> Optional[User]:
        """Returns the user on matching credentials, None otherwise"""
        if username is None:
            return None
        user = self.find_by_username(username)
        if user is None or not user.check_password(password):
            self.logger.info(f"Failed login for {username}")
            return None
        return user

    def find_by_username(self, username: Optional[str]) -> Optional[User]:
        if username is None:
            return None
        return self._users.get(username)

    def find_by_id(self, user_id: Optional[int]) -> Optional[User]:
        if user_id is None:
            return None
        for user in self._users.values():
            if user.user_id == user_id:
                return user
        return None

    def ensure_default_admin(self) -> User:
        """Create admin/admin if no admin account exists yet"""
        existing = self.find_by_username(DEFAULT_ADMIN_USERNAME)
        if existing is not None:
            return existing
        return self.register(DEFAULT_ADMIN_USERNAME, DEFAULT_ADMIN_PASSWORD, UserRole.ADMIN)

    def users(self) -> List[User]:
        return list(self._users.values())

    # Booking history collaborator

    def add_booking_id(self, username: str, booking_id: int) -> None:
        user = self.find_by_username(username)
        if user is None:
            self.logger.warning(f"No account for {username}; booking {booking_id} not linked")
            return
        user.add_booking_id(booking_id)

    def booking_ids(self, username: str) -> List[int]:
        user = self.find_by_username(username)
        return user.booking_ids if user else []
