"""Directory use cases: users, groups and group membership."""

import logging
from typing import List, Optional

from graphguard.core.services.graph_service import GraphService, path_segment
from graphguard.domain.models.graph import GraphGroup, GraphUser

logger = logging.getLogger(__name__)

USER_FIELDS = "id,displayName,userPrincipalName,mail,jobTitle,accountEnabled"
GROUP_FIELDS = "id,displayName,description,mail,groupTypes,securityEnabled"


class DirectoryService(GraphService):
    """Reads users and groups from Microsoft Graph."""

    async def list_users(self, top: Optional[int] = None, filter_expr: Optional[str] = None) -> List[GraphUser]:
        """Lists users, optionally filtered with an OData $filter expression."""
        params = {'$top': self._page_size(top), '$select': USER_FIELDS}
        if filter_expr:
            params['$filter'] = filter_expr
        logger.info(f"Listing users (top={top}, filter={filter_expr})")
        items = await self._collect('/users', 'list_users', params=params, max_items=top)
        return [GraphUser.from_payload(item) for item in items]

    async def get_user(self, user_id: str) -> GraphUser:
        """Fetches a single user by object id or user principal name."""
        if not user_id:
            raise ValueError("user_id is required")
        payload = await self._get_object(f'/users/{path_segment(user_id)}', 'get_user', params={'$select': USER_FIELDS})
        return GraphUser.from_payload(payload)

    async def list_groups(self, top: Optional[int] = None) -> List[GraphGroup]:
        params = {'$top': self._page_size(top), '$select': GROUP_FIELDS}
        logger.info(f"Listing groups (top={top})")
        items = await self._collect('/groups', 'list_groups', params=params, max_items=top)
        return [GraphGroup.from_payload(item) for item in items]

    async def list_group_members(self, group_id: str, top: Optional[int] = None) -> List[GraphUser]:
        """Lists the members of a group.

        Members may be users, devices or nested groups; only user objects are
        returned.
        """
        if not group_id:
            raise ValueError("group_id is required")
        params = {'$top': self._page_size(top)}
        items = await self._collect(f'/groups/{path_segment(group_id)}/members', 'list_group_members', params=params, max_items=top)
        users = [item for item in items if item.get('@odata.type', '#microsoft.graph.user') == '#microsoft.graph.user']
        if len(users) != len(items):
            logger.debug(f"Skipped {len(items) - len(users)} non-user members of group {group_id}")
        return [GraphUser.from_payload(item) for item in users]
