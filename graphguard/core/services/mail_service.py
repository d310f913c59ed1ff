"""Mail use cases."""

import logging
from typing import List, Optional

from graphguard.core.services.graph_service import GraphService, path_segment
from graphguard.domain.models.graph import GraphMessage

logger = logging.getLogger(__name__)

MESSAGE_FIELDS = "id,subject,from,receivedDateTime,isRead,hasAttachments"


class MailService(GraphService):

    async def list_messages(self, user_id: str, top: Optional[int] = 25, unread_only: bool = False) -> List[GraphMessage]:
        """Lists the newest messages in a user's mailbox."""
        if not user_id:
            raise ValueError("user_id is required")
        params = {
            '$top': self._page_size(top),
            '$select': MESSAGE_FIELDS,
            '$orderby': 'receivedDateTime desc',
        }
        if unread_only:
            params['$filter'] = 'isRead eq false'
        logger.info(f"Listing messages for {user_id} (top={top}, unread_only={unread_only})")
        items = await self._collect(f'/users/{path_segment(user_id)}/messages', 'list_messages', params=params, max_items=top)
        return [GraphMessage.from_payload(item) for item in items]
