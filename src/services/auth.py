"""
Session/Auth Gateway

Exchanges a resolved external identity assertion for a local user,
creating the user on first sign-in.

CRITICAL: At most one user exists per external subject identifier.
The read-then-create sequence for a subject runs under a per-subject
asyncio.Lock, and the store's unique constraint on external_auth_id
backs that up: if the insert still collides, we fall back to a lookup.

An existing profile always wins: the name proposed by the provider is
only used when the user is created.
"""

import asyncio
from collections.abc import Mapping
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

from pydantic import ValidationError

from src.models.audit import AuditEventBuilder
from src.models.expense import User
from src.models.identity import ExternalCredential, Session
from src.services.base import AuditedService, rejects_invalid
from src.services.errors import (
    InvalidCredentialError,
    InvalidDisplayNameError,
    NotAuthenticatedError,
    UserNotFoundError,
)
from src.services.session import InMemorySessionStore, SessionStore
from src.services.storage import DuplicateError, ExpenseStoreInterface

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger


def credential_from_provider(payload: Mapping[str, Any]) -> ExternalCredential:
    """
    Validate a raw sign-in payload once, at the boundary.

    Accepts the Apple-style shape ({"user", "given_name", "family_name"})
    as well as {"subject_id", "proposed_name"}.

    Raises:
        InvalidCredentialError: If the payload is malformed or has no subject
    """
    subject_id = payload.get("subject_id") or payload.get("user")
    proposed_name = payload.get("proposed_name")
    if proposed_name is None:
        parts = [payload.get("given_name"), payload.get("family_name")]
        proposed_name = " ".join(p for p in parts if isinstance(p, str) and p) or None

    try:
        credential = ExternalCredential(
            subject_id=subject_id,
            proposed_name=proposed_name,
        )
    except ValidationError as e:
        raise InvalidCredentialError(f"Malformed credential: {e}") from e

    if not credential.has_subject:
        raise InvalidCredentialError("Credential has no subject identifier")
    return credential


class AuthGateway(AuditedService):
    """
    Sign-in, sign-out and profile edits.

    The session store is written only by this class.
    """

    def __init__(
        self,
        store: ExpenseStoreInterface,
        session_store: Optional[SessionStore] = None,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        super().__init__(store, audit_logger)
        self._session_store = session_store or InMemorySessionStore()
        # subject id -> (lock, number of callers holding or awaiting it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _subject_lock(self, subject_id: str) -> AsyncIterator[None]:
        """Serialise work on one subject id. The entry is dropped once unused."""
        lock, users = self._locks.get(subject_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[subject_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[subject_id]
            if users == 1:
                del self._locks[subject_id]
            else:
                self._locks[subject_id] = (lock, users - 1)

    async def _find_by_subject(self, subject_id: str) -> Optional[User]:
        async with self._store.transaction() as tx:
            matches = await tx.query(
                User, lambda u: u.external_auth_id == subject_id
            )
        return matches[0] if matches else None

    async def _lookup_or_create(
        self,
        subject_id: str,
        proposed_name: str,
    ) -> tuple[User, bool]:
        async with self._store.transaction() as tx:
            matches = await tx.query(
                User, lambda u: u.external_auth_id == subject_id
            )
            if matches:
                return matches[0], False
            user = User(external_auth_id=subject_id, display_name=proposed_name)
            await tx.insert(user)
        return user, True

    async def authenticate(self, credential: ExternalCredential) -> Session:
        """
        Look up or create the user for this credential.

        Returns:
            Session carrying the user's id and current display name

        Raises:
            InvalidCredentialError: If the credential has no subject id
            PersistenceError: If creating the user failed to commit
        """
        async with self._operation("authenticate", entity_type="user"):
            if not credential.has_subject:
                raise InvalidCredentialError("Credential has no subject identifier")

            subject_id = credential.subject_id
            async with self._subject_lock(subject_id):
                try:
                    user, created = await self._lookup_or_create(
                        subject_id, credential.proposed_name or ""
                    )
                except DuplicateError:
                    # Someone else inserted this subject between our read and write
                    user = await self._find_by_subject(subject_id)
                    if user is None:
                        raise
                    created = False

        if created:
            await self._audit(AuditEventBuilder.user_created(user.id, subject_id))
        await self._audit(AuditEventBuilder.user_signed_in(user.id))

        return Session(user_id=str(user.id), display_name=user.display_name)

    async def sign_in(self, credential: ExternalCredential) -> Session:
        """
        Authenticate and remember the session across restarts.

        On failure the stored session is left untouched.
        """
        session = await self.authenticate(credential)
        self._session_store.save(session)
        return session

    def current_session(self) -> Session:
        return self._session_store.load()

    async def sign_out(self) -> Session:
        """Forget the stored session. There is no server-side invalidation."""
        previous = self._session_store.load()
        cleared = self._session_store.clear()
        await self._audit(AuditEventBuilder.user_signed_out(previous.user_id))
        return cleared

    async def update_display_name(self, session: Session, display_name: str) -> Session:
        """
        Edit the signed-in user's display name.

        Returns:
            The refreshed session (also stored if it is the stored one)

        Raises:
            NotAuthenticatedError, UserNotFoundError,
            InvalidDisplayNameError: If the name is longer than 200 characters
        """
        async with self._operation("update_display_name", "user", session.user_id or None):
            user_id = session.user_uuid
            if not session.is_authenticated:
                raise NotAuthenticatedError("Sign in to edit your profile")
            if user_id is None:
                raise UserNotFoundError(f"User not found: {session.user_id}")

            async with self._store.transaction() as tx:
                user = await tx.get(User, user_id)
                if user is None:
                    raise UserNotFoundError(f"User not found: {session.user_id}")
                with rejects_invalid(InvalidDisplayNameError, "display name"):
                    user.display_name = display_name
                await tx.update(user)

        refreshed = Session(user_id=str(user.id), display_name=user.display_name)
        if self._session_store.load().user_id == refreshed.user_id:
            self._session_store.save(refreshed)

        await self._audit(AuditEventBuilder.profile_updated(user.id, user.display_name))
        return refreshed
