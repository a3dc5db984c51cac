"""
Application Wiring for Expense Tracker

This module ties together all the components a UI needs:
store, session store, audit logger and the domain services.

DESIGN DECISION: The session is read from the settings store once, at
startup, and handed back to the caller. From then on the UI passes the
Session value explicitly into operations that need the current user.
"""

from typing import Optional

from src.audit import AuditLogger, configure_logging
from src.config import Settings, get_settings
from src.models.expense import format_amount
from src.models.identity import ExternalCredential, Session
from src.services import (
    AuditStorageInterface,
    AuthGateway,
    CategoryRegistry,
    ExpenseService,
    ExpenseStoreInterface,
    GroupService,
    InMemoryAuditStorage,
    InMemoryExpenseStore,
    JsonFileSessionStore,
    SessionStore,
    SqlAuditStorage,
    SqlExpenseStore,
    TemplateService,
    UserDirectory,
)


class ExpenseTracker:
    """
    One bundle of everything the app runs on.

    Lifecycle:
    1. startup()  → open store, seed categories on first launch, load session
    2. use auth, categories, expenses, groups, templates and users
    3. shutdown() → release the store
    """

    def __init__(
        self,
        store: ExpenseStoreInterface,
        session_store: SessionStore,
        audit_logger: Optional[AuditLogger] = None,
        max_amount_cents: Optional[int] = None,
        seed_default_categories: bool = True,
        currency_code: str = "USD",
    ):
        self.store = store
        self.audit_logger = audit_logger
        self.auth = AuthGateway(store, session_store, audit_logger)
        self.categories = CategoryRegistry(store, audit_logger)
        self.expenses = ExpenseService(
            store,
            audit_logger,
            max_amount_cents=max_amount_cents,
        )
        self.groups = GroupService(store, audit_logger)
        self.templates = TemplateService(
            store,
            audit_logger,
            max_amount_cents=max_amount_cents,
        )
        self.users = UserDirectory(store, audit_logger)
        self._seed_default_categories = seed_default_categories
        self.currency_code = currency_code

    async def startup(self) -> Session:
        """
        Prepare the store and return the remembered session.

        Seeding only inserts anything when no category exists yet.
        """
        await self.store.connect()
        if self._seed_default_categories:
            await self.categories.seed_defaults()
        return self.auth.current_session()

    async def shutdown(self) -> None:
        await self.store.close()

    async def sign_in(self, credential: ExternalCredential) -> Session:
        return await self.auth.sign_in(credential)

    async def sign_out(self) -> Session:
        return await self.auth.sign_out()

    def display_amount(self, cents: int) -> str:
        return format_amount(cents, self.currency_code)


def create_app_components(
    settings: Optional[Settings] = None,
    session_store: Optional[SessionStore] = None,
) -> ExpenseTracker:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to build from (defaults to get_settings())
        session_store: Override the JSON session file (useful in tests)

    Returns:
        An ExpenseTracker; call startup() before use
    """
    settings = settings or get_settings()
    app_settings = settings.app
    store_settings = settings.store

    configure_logging(app_settings.log_level)

    store: ExpenseStoreInterface
    audit_storage: AuditStorageInterface
    if store_settings.is_in_memory:
        store = InMemoryExpenseStore()
        audit_storage = InMemoryAuditStorage()
    else:
        store = SqlExpenseStore(
            store_settings.database_url,
            echo=store_settings.echo_sql,
        )
        audit_storage = SqlAuditStorage(store)

    if session_store is None:
        session_store = JsonFileSessionStore(settings.session.settings_path)

    return ExpenseTracker(
        store=store,
        session_store=session_store,
        audit_logger=AuditLogger(audit_storage),
        max_amount_cents=app_settings.max_expense_amount_cents,
        seed_default_categories=app_settings.seed_default_categories,
        currency_code=app_settings.currency_code,
    )
