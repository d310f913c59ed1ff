import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from graphguard.core.command_handler import GROUP_COLUMNS, USER_COLUMNS, CommandHandler
from graphguard.core.services.directory_service import DirectoryService
from graphguard.core.services.mail_service import MailService
from graphguard.domain.events.api_events import ApiCallSucceeded, CacheFallbackUsed
from graphguard.domain.exceptions import CircuitOpenError, GraphNotFoundError, ThrottledError
from graphguard.domain.interfaces.cache import CacheService
from graphguard.domain.interfaces.user_interface import UserInterface
from graphguard.domain.models.graph import GraphGroup, GraphMessage, GraphUser
from graphguard.infrastructure.resilience.pipeline import ResiliencePipeline


@pytest.fixture
def mock_directory_service():
    service = MagicMock(spec=DirectoryService)
    service.list_users = AsyncMock()
    service.get_user = AsyncMock()
    service.list_groups = AsyncMock()
    service.list_group_members = AsyncMock()
    return service


@pytest.fixture
def mock_mail_service():
    service = MagicMock(spec=MailService)
    service.list_messages = AsyncMock()
    return service


@pytest.fixture
def mock_cache_service():
    return AsyncMock(spec=CacheService)


@pytest.fixture
def mock_pipeline():
    return MagicMock(spec=ResiliencePipeline)


@pytest.fixture
def mock_ui():
    return MagicMock(spec=UserInterface)


@pytest.fixture
def command_handler(mock_directory_service, mock_mail_service, mock_pipeline, mock_cache_service, mock_ui):
    """Fixture to create CommandHandler with mocked services."""
    return CommandHandler(
        directory_service=mock_directory_service,
        mail_service=mock_mail_service,
        pipeline=mock_pipeline,
        cache_service=mock_cache_service,
        ui=mock_ui,
    )


def test_handle_users_renders_table(command_handler, mock_directory_service, mock_ui):
    mock_directory_service.list_users.return_value = [
        GraphUser(id="u1", display_name="Adele", user_principal_name="adele@contoso.com", account_enabled=True),
    ]
    assert asyncio.run(command_handler.handle_users(top=5, filter_expr="accountEnabled eq true")) is True
    mock_directory_service.list_users.assert_awaited_once_with(top=5, filter_expr="accountEnabled eq true")
    title, columns, rows = mock_ui.display_table.call_args.args
    assert title == "Users"
    assert columns == USER_COLUMNS
    assert rows == [("u1", "Adele", "adele@contoso.com", None, None, True)]


def test_handle_user_renders_record(command_handler, mock_directory_service, mock_ui):
    mock_directory_service.get_user.return_value = GraphUser(id="u1", display_name="Adele", mail="adele@contoso.com")
    assert asyncio.run(command_handler.handle_user("u1")) is True
    title, record = mock_ui.display_record.call_args.args
    assert title == "Adele"
    assert record['mail'] == "adele@contoso.com"


def test_handle_user_not_found(command_handler, mock_directory_service, mock_ui):
    mock_directory_service.get_user.side_effect = GraphNotFoundError("Resource 'x' does not exist", status_code=404)
    assert asyncio.run(command_handler.handle_user("x")) is False
    mock_ui.display_error.assert_called_once_with("Fetching user 'x' failed (HTTP 404): Resource 'x' does not exist")


def test_open_circuit_is_reported_as_skipped(command_handler, mock_directory_service, mock_ui):
    mock_directory_service.list_groups.side_effect = CircuitOpenError("graph", retry_after=12.4)
    assert asyncio.run(command_handler.handle_groups()) is False
    mock_ui.display_error.assert_called_once_with(
        "Listing groups skipped: Microsoft Graph is failing, retry in 12s."
    )


def test_exhausted_throttling_is_reported(command_handler, mock_mail_service, mock_ui):
    mock_mail_service.list_messages.side_effect = ThrottledError("Too many requests", status_code=429)
    assert asyncio.run(command_handler.handle_messages("u1")) is False
    mock_ui.display_error.assert_called_once_with("Listing messages of 'u1' failed (HTTP 429): Too many requests")


def test_unexpected_error_is_reported(command_handler, mock_directory_service, mock_ui):
    mock_directory_service.list_users.side_effect = ValueError("top must be >= 1, got 0")
    assert asyncio.run(command_handler.handle_users(top=0)) is False
    mock_ui.display_error.assert_called_once_with("Listing users failed: top must be >= 1, got 0")


def test_handle_groups_and_members(command_handler, mock_directory_service, mock_ui):
    mock_directory_service.list_groups.return_value = [GraphGroup(id="g1", display_name="Sales", group_types=["Unified"])]
    mock_directory_service.list_group_members.return_value = [GraphUser(id="u1")]
    assert asyncio.run(command_handler.handle_groups(top=1)) is True
    assert mock_ui.display_table.call_args.args[1] == GROUP_COLUMNS
    assert mock_ui.display_table.call_args.args[2] == [("g1", "Sales", None, True, None)]
    assert asyncio.run(command_handler.handle_members("g1")) is True
    mock_directory_service.list_group_members.assert_awaited_once_with("g1", top=None)
    assert mock_ui.display_table.call_args.args[0] == "Members of g1"


def test_handle_messages(command_handler, mock_mail_service, mock_ui):
    mock_mail_service.list_messages.return_value = [
        GraphMessage(id="m1", subject="Hi", sender="megan@contoso.com", received="2024-03-01T09:30:00Z", is_read=True),
    ]
    assert asyncio.run(command_handler.handle_messages("u1", top=5, unread_only=True)) is True
    mock_mail_service.list_messages.assert_awaited_once_with("u1", top=5, unread_only=True)
    assert mock_ui.display_table.call_args.args[2] == [("2024-03-01T09:30:00Z", "megan@contoso.com", "Hi", True, None)]


def test_handle_status(command_handler, mock_pipeline, mock_ui):
    mock_pipeline.status.return_value = {'circuit_breaker': {'state': 'closed'}}
    assert command_handler.handle_status() is True
    mock_ui.display_status.assert_called_once_with({'circuit_breaker': {'state': 'closed'}}, show_counters=True)


def test_handle_status_settings_only(command_handler, mock_pipeline, mock_ui):
    mock_pipeline.status.return_value = {}
    assert command_handler.handle_status(show_counters=False) is True
    mock_ui.display_status.assert_called_once_with({}, show_counters=False)


def test_cache_fallback_event_warns_user(command_handler, mock_ui):
    command_handler.warn_on_cache_fallback(
        CacheFallbackUsed(endpoint="list_users", cache_key="list_users|/users", reason="ThrottledError")
    )
    mock_ui.display_warning.assert_called_once_with(
        "Microsoft Graph unavailable (ThrottledError); showing cached list_users results."
    )
    command_handler.warn_on_cache_fallback(ApiCallSucceeded(endpoint="list_users", latency_ms=3.0))
    assert mock_ui.display_warning.call_count == 1


@pytest.mark.parametrize("level", ['l1', 'l2', 'all'])
def test_handle_clear_cache(command_handler, mock_cache_service, mock_ui, level):
    assert asyncio.run(command_handler.handle_clear_cache(level)) is True
    mock_cache_service.clear.assert_awaited_once_with(level)
    mock_ui.display_info.assert_called_once_with(f"Cache level '{level}' cleared successfully.")


def test_handle_clear_cache_invalid_level(command_handler, mock_cache_service, mock_ui):
    assert asyncio.run(command_handler.handle_clear_cache('l3')) is False
    mock_cache_service.clear.assert_not_awaited()
    mock_ui.display_error.assert_called_once()
