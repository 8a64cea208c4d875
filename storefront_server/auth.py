"""Identity management and session persistence."""

import logging
from typing import Callable, Optional

from .api_client import USERS, RecordStoreClient
from .exceptions import AuthenticationError, RecordStoreError
from .models import AuthCredentials, SessionData, User
from .state import Signal
from .storage import LocalStorage

logger = logging.getLogger(__name__)

LoginHandler = Callable[[User], None]
LogoutHandler = Callable[[User], None]


class AuthManager:
    """
    Owns the current identity signal.

    Identity changes are dispatched as edges: ``on_login`` handlers run once
    per none -> identity transition and ``on_logout`` handlers once per
    identity -> none transition. Switching directly between two different
    users is dispatched as a logout followed by a login. Re-emitting the same
    identity (e.g. after a profile update) dispatches nothing.
    """

    STORAGE_KEY = "ecommerce-user"

    def __init__(self, store: RecordStoreClient, storage: Optional[LocalStorage] = None) -> None:
        """
        Initialize the authentication manager.

        Args:
            store: Record store client used for the users collection
            storage: Local storage capability, None in non-interactive contexts
        """
        self.store = store
        self.storage = storage
        self.current_user: Signal[Optional[User]] = Signal(self._load_session().user)
        self._login_handlers: list[LoginHandler] = []
        self._logout_handlers: list[LogoutHandler] = []
        self.current_user.subscribe(self._dispatch)

    def _load_session(self) -> SessionData:
        """Load the persisted identity if there is one."""
        if self.storage is None:
            return SessionData()
        data = self.storage.get(self.STORAGE_KEY)
        if not data:
            return SessionData()
        try:
            session = SessionData.model_validate(data)
            if session.user:
                logger.info(f"Restored session for {session.user.email}")
            return session
        except ValueError as e:
            logger.error(f"Error parsing stored session: {e}")
            self.storage.remove(self.STORAGE_KEY)
            return SessionData()

    def _save_session(self) -> None:
        if self.storage is None:
            return
        user = self.current_user()
        if user is None:
            self.storage.remove(self.STORAGE_KEY)
        else:
            session = SessionData(user=user, is_authenticated=True)
            self.storage.set(self.STORAGE_KEY, session.model_dump(mode="json"))

    def on_login(self, handler: LoginHandler) -> None:
        self._login_handlers.append(handler)

    def on_logout(self, handler: LogoutHandler) -> None:
        self._logout_handlers.append(handler)

    def _dispatch(self, new: Optional[User], old: Optional[User]) -> None:
        if old is not None and (new is None or new.id != old.id):
            logger.info(f"Identity transition: {old.id} -> none")
            for handler in list(self._logout_handlers):
                handler(old)
        if new is not None and (old is None or new.id != old.id):
            logger.info(f"Identity transition: none -> {new.id}")
            for handler in list(self._login_handlers):
                handler(new)

    def is_authenticated(self) -> bool:
        return self.current_user() is not None

    def _set_user(self, user: Optional[User]) -> None:
        self.current_user.set(user)
        self._save_session()

    async def login(self, credentials: AuthCredentials) -> User:
        """
        Authenticate against the users collection.

        Raises:
            AuthenticationError: If no user matches the credentials
            RecordStoreError: If the lookup request fails
        """
        logger.info(f"=== LOGIN: email={credentials.email} ===")
        users = await self.store.list_records(USERS, email=credentials.email, password=credentials.password)
        if not users:
            raise AuthenticationError("Invalid credentials")

        user = User.model_validate(users[0])
        self._set_user(user)
        logger.info(f"User logged in successfully: {user.email}")
        return user

    async def register(self, name: str, credentials: AuthCredentials, phone: Optional[str] = None) -> User:
        """
        Create a user and sign in as it.

        Raises:
            AuthenticationError: If the email is already registered
        """
        existing = await self.store.list_records(USERS, email=credentials.email)
        if existing:
            raise AuthenticationError("Email already exists")

        record = {"name": name, "email": credentials.email, "password": credentials.password}
        if phone:
            record["phone"] = phone
        user = User.model_validate(await self.store.create(USERS, record))
        self._set_user(user)
        logger.info(f"User registered successfully: {user.email}")
        return user

    async def update_profile(self, fields: dict) -> User:
        """Patch the current user's profile."""
        user = self.current_user()
        if user is None:
            raise AuthenticationError("No user logged in")

        try:
            updated = User.model_validate(await self.store.patch(USERS, user.id, fields))
        except RecordStoreError as e:
            logger.error(f"Profile update failed: {e}")
            raise
        self._set_user(updated)
        return updated

    def logout(self) -> None:
        self._set_user(None)
        logger.info("User logged out")
