"""Tests for settings and application wiring."""

import pytest

from src.config import AppSettings, Settings, StoreSettings, get_settings, validate_all_settings
from src.models.expense import DEFAULT_CATEGORY_TITLES
from src.models.identity import ExternalCredential, Session
from src.orchestrator import ExpenseTracker, create_app_components
from src.services import (
    InMemoryExpenseStore,
    InMemorySessionStore,
    InvalidAmountError,
    SqlExpenseStore,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Run each test away from any local .env and with default settings."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "EXPENSES_STORE_DATABASE_URL",
        "EXPENSES_SESSION_SETTINGS_PATH",
        "MAX_EXPENSE_AMOUNT_CENTS",
        "SEED_DEFAULT_CATEGORIES",
        "CURRENCY_CODE",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for configuration loading."""

    def test_defaults(self):
        """Test an empty environment selects the in-memory store."""
        assert StoreSettings().is_in_memory
        app = AppSettings()
        assert app.currency_code == "USD"
        assert app.seed_default_categories is True

    def test_environment_overrides(self, monkeypatch):
        """Test values come from prefixed environment variables."""
        monkeypatch.setenv("EXPENSES_STORE_DATABASE_URL", "sqlite+aiosqlite:///x.db")
        monkeypatch.setenv("MAX_EXPENSE_AMOUNT_CENTS", "1000")
        settings = Settings()
        assert not settings.store.is_in_memory
        assert settings.app.max_expense_amount_cents == 1000

    def test_invalid_log_level(self, monkeypatch):
        """Test a bad log level is reported by the startup check."""
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        results = validate_all_settings()
        assert results["store"] is True
        assert results["app"] is False
        assert "app_error" in results


class TestExpenseTracker:
    """Tests for the assembled application."""

    async def test_startup_seeds_and_loads_session(self):
        """Test first launch seeds categories and starts signed out."""
        tracker = ExpenseTracker(InMemoryExpenseStore(), InMemorySessionStore())
        session = await tracker.startup()
        assert session == Session.anonymous()
        titles = [c.title for c in await tracker.categories.list_categories()]
        assert titles == list(DEFAULT_CATEGORY_TITLES)

    async def test_startup_without_seeding(self):
        """Test seeding can be turned off."""
        tracker = ExpenseTracker(
            InMemoryExpenseStore(), InMemorySessionStore(), seed_default_categories=False
        )
        await tracker.startup()
        assert await tracker.categories.list_categories() == []

    async def test_sign_in_and_out(self):
        """Test the session round trip through the tracker."""
        tracker = ExpenseTracker(InMemoryExpenseStore(), InMemorySessionStore())
        await tracker.startup()
        session = await tracker.sign_in(
            ExternalCredential(subject_id="apple:123", proposed_name="Alice")
        )
        assert tracker.auth.current_session() == session
        assert await tracker.sign_out() == Session.anonymous()

    def test_display_amount(self):
        """Test amounts render in the configured currency."""
        tracker = ExpenseTracker(
            InMemoryExpenseStore(), InMemorySessionStore(), currency_code="EUR"
        )
        assert tracker.display_amount(1999) == "EUR 19.99"


class TestCreateAppComponents:
    """Tests for building the app from settings."""

    async def test_in_memory_by_default(self, tmp_path, monkeypatch):
        """Test no database URL means an in-memory store."""
        monkeypatch.setenv("EXPENSES_SESSION_SETTINGS_PATH", str(tmp_path / "session.json"))
        tracker = create_app_components(Settings())
        assert isinstance(tracker.store, InMemoryExpenseStore)
        assert await tracker.startup() == Session.anonymous()
        await tracker.shutdown()

    async def test_max_amount_applied(self, monkeypatch):
        """Test the configured ceiling reaches the expense service."""
        monkeypatch.setenv("MAX_EXPENSE_AMOUNT_CENTS", "1000")
        tracker = create_app_components(Settings(), session_store=InMemorySessionStore())
        await tracker.startup()
        with pytest.raises(InvalidAmountError):
            await tracker.expenses.create_expense("Car", 1001)

    async def test_templates_share_the_ceiling(self, monkeypatch):
        """Test template items are held to the same configured ceiling."""
        monkeypatch.setenv("MAX_EXPENSE_AMOUNT_CENTS", "1000")
        tracker = create_app_components(Settings(), session_store=InMemorySessionStore())
        await tracker.startup()
        alice = await tracker.sign_in(
            ExternalCredential(subject_id="apple:123", proposed_name="Alice")
        )
        with pytest.raises(InvalidAmountError):
            await tracker.templates.create_template(alice, "Car", [{"name": "Car", "amount": 1001}])

    async def test_restart_keeps_data_and_session(self, tmp_path, monkeypatch):
        """Test users, expenses and the session survive a restart."""
        monkeypatch.setenv(
            "EXPENSES_STORE_DATABASE_URL",
            f"sqlite+aiosqlite:///{tmp_path / 'expenses.db'}",
        )
        monkeypatch.setenv("EXPENSES_SESSION_SETTINGS_PATH", str(tmp_path / "session.json"))

        tracker = create_app_components(Settings())
        assert isinstance(tracker.store, SqlExpenseStore)
        await tracker.startup()
        alice = await tracker.sign_in(
            ExternalCredential(subject_id="apple:123", proposed_name="Alice")
        )
        lunch = await tracker.expenses.create_expense("Lunch", 500, author_id=alice.user_id)
        await tracker.shutdown()

        restarted = create_app_components(Settings())
        session = await restarted.startup()
        assert session == alice
        assert [e.id for e in await restarted.expenses.list_active(session).to_list()] == [lunch.id]
        assert len(await restarted.categories.list_categories()) == 3
        await restarted.shutdown()
