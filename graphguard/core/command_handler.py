"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), delegates the work
to the Graph application services and turns results and errors into
output on the UserInterface.
"""

import logging
from typing import Optional

from graphguard.core.services.directory_service import DirectoryService
from graphguard.core.services.mail_service import MailService
from graphguard.domain.events.api_events import CacheFallbackUsed, DomainEvent
from graphguard.domain.exceptions import CircuitOpenError, GraphApiError
from graphguard.domain.interfaces.cache import CacheService
from graphguard.domain.interfaces.user_interface import UserInterface
from graphguard.domain.models.common import CACHE_LEVELS
from graphguard.infrastructure.resilience.pipeline import ResiliencePipeline

logger = logging.getLogger(__name__)

USER_COLUMNS = ("Id", "Display name", "UPN", "Mail", "Job title", "Enabled")
GROUP_COLUMNS = ("Id", "Display name", "Mail", "Microsoft 365", "Security")
MESSAGE_COLUMNS = ("Received", "From", "Subject", "Read", "Attachments")


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services.

    Every handler returns True on success and False after reporting an
    error, which main.py maps to the process exit code.
    """

    def __init__(
        self,
        directory_service: DirectoryService,
        mail_service: MailService,
        pipeline: ResiliencePipeline,
        cache_service: CacheService,
        ui: UserInterface,
    ):
        self.directory_service = directory_service
        self.mail_service = mail_service
        self.pipeline = pipeline
        self.cache_service = cache_service
        self.ui = ui

    def _report(self, action: str, error: Exception) -> bool:
        if isinstance(error, CircuitOpenError):
            logger.warning(f"{action} rejected: {error}")
            self.ui.display_error(f"{action} skipped: Microsoft Graph is failing, retry in {error.retry_after:.0f}s.")
        elif isinstance(error, GraphApiError):
            logger.error(f"{action} failed: {error.to_dict()}")
            status = f" (HTTP {error.status_code})" if error.status_code else ""
            self.ui.display_error(f"{action} failed{status}: {error.message}")
        else:
            logger.error(f"{action} failed: {error}", exc_info=True)
            self.ui.display_error(f"{action} failed: {error}")
        return False

    async def handle_users(self, top: Optional[int] = None, filter_expr: Optional[str] = None) -> bool:
        logger.info(f"Handling 'users' command (top={top}, filter={filter_expr})")
        try:
            users = await self.directory_service.list_users(top=top, filter_expr=filter_expr)
        except Exception as e:
            return self._report("Listing users", e)
        self.ui.display_table("Users", USER_COLUMNS, [
            (u.id, u.display_name, u.user_principal_name, u.mail, u.job_title, u.account_enabled) for u in users
        ])
        return True

    async def handle_user(self, user_id: str) -> bool:
        logger.info(f"Handling 'user' command for {user_id}")
        try:
            user = await self.directory_service.get_user(user_id)
        except Exception as e:
            return self._report(f"Fetching user '{user_id}'", e)
        self.ui.display_record(user.display_name or user.id, {
            'id': user.id,
            'userPrincipalName': user.user_principal_name,
            'mail': user.mail,
            'jobTitle': user.job_title,
            'accountEnabled': user.account_enabled,
        })
        return True

    async def handle_groups(self, top: Optional[int] = None) -> bool:
        logger.info(f"Handling 'groups' command (top={top})")
        try:
            groups = await self.directory_service.list_groups(top=top)
        except Exception as e:
            return self._report("Listing groups", e)
        self.ui.display_table("Groups", GROUP_COLUMNS, [
            (g.id, g.display_name, g.mail, g.is_unified, g.security_enabled) for g in groups
        ])
        return True

    async def handle_members(self, group_id: str, top: Optional[int] = None) -> bool:
        logger.info(f"Handling 'members' command for group {group_id}")
        try:
            members = await self.directory_service.list_group_members(group_id, top=top)
        except Exception as e:
            return self._report(f"Listing members of '{group_id}'", e)
        self.ui.display_table(f"Members of {group_id}", USER_COLUMNS, [
            (u.id, u.display_name, u.user_principal_name, u.mail, u.job_title, u.account_enabled) for u in members
        ])
        return True

    async def handle_messages(self, user_id: str, top: Optional[int] = 25, unread_only: bool = False) -> bool:
        logger.info(f"Handling 'messages' command for {user_id}")
        try:
            messages = await self.mail_service.list_messages(user_id, top=top, unread_only=unread_only)
        except Exception as e:
            return self._report(f"Listing messages of '{user_id}'", e)
        self.ui.display_table(f"Messages of {user_id}", MESSAGE_COLUMNS, [
            (m.received, m.sender, m.subject, m.is_read, m.has_attachments) for m in messages
        ])
        return True

    def handle_status(self, show_counters: bool = True) -> bool:
        """Shows the resilience settings; counters only mean something after calls in this process."""
        self.ui.display_status(self.pipeline.status(), show_counters=show_counters)
        return True

    def warn_on_cache_fallback(self, event: DomainEvent) -> None:
        """Event handler telling the user that a result came from the cache."""
        if isinstance(event, CacheFallbackUsed):
            self.ui.display_warning(
                f"Microsoft Graph unavailable ({event.reason}); showing cached {event.endpoint} results."
            )

    async def handle_clear_cache(self, level: str) -> bool:
        """Handles the 'clear-cache' command."""
        logger.info(f"Handling 'clear-cache' command for level: {level}")
        if level not in CACHE_LEVELS:
            self.ui.display_error(f"Invalid cache level. Choose {', '.join(repr(l) for l in CACHE_LEVELS)}.")
            return False
        try:
            await self.cache_service.clear(level)
        except Exception as e:
            return self._report("Clearing cache", e)
        self.ui.display_info(f"Cache level '{level}' cleared successfully.")
        return True
