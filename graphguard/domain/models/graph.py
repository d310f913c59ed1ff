"""Domain views over Microsoft Graph payloads.

These are transient, read-only projections of the JSON Graph returns for
users, groups and mail messages. The raw payload is kept alongside so no
field is lost.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class GraphUser:
    """A directory user (`/users/{id}`)."""
    id: str
    display_name: Optional[str] = None
    user_principal_name: Optional[str] = None
    mail: Optional[str] = None
    job_title: Optional[str] = None
    account_enabled: Optional[bool] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GraphUser":
        return cls(
            id=payload.get("id", ""),
            display_name=payload.get("displayName"),
            user_principal_name=payload.get("userPrincipalName"),
            mail=payload.get("mail"),
            job_title=payload.get("jobTitle"),
            account_enabled=payload.get("accountEnabled"),
            raw=payload,
        )


@dataclass
class GraphGroup:
    """A directory group (`/groups/{id}`)."""
    id: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    mail: Optional[str] = None
    group_types: List[str] = field(default_factory=list)
    security_enabled: Optional[bool] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_unified(self) -> bool:
        """True for Microsoft 365 groups."""
        return "Unified" in self.group_types

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GraphGroup":
        return cls(
            id=payload.get("id", ""),
            display_name=payload.get("displayName"),
            description=payload.get("description"),
            mail=payload.get("mail"),
            group_types=list(payload.get("groupTypes") or []),
            security_enabled=payload.get("securityEnabled"),
            raw=payload,
        )


@dataclass
class GraphMessage:
    """A mail message (`/users/{id}/messages/{id}`)."""
    id: str
    subject: Optional[str] = None
    sender: Optional[str] = None
    received: Optional[str] = None  # ISO 8601 as returned by Graph
    is_read: Optional[bool] = None
    has_attachments: Optional[bool] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GraphMessage":
        # from -> emailAddress -> address
        sender_block = (payload.get("from") or {}).get("emailAddress") or {}
        return cls(
            id=payload.get("id", ""),
            subject=payload.get("subject"),
            sender=sender_block.get("address"),
            received=payload.get("receivedDateTime"),
            is_read=payload.get("isRead"),
            has_attachments=payload.get("hasAttachments"),
            raw=payload,
        )


@dataclass
class GraphPage:
    """One page of a Graph collection response."""
    items: List[Dict[str, Any]]
    next_link: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_link is not None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GraphPage":
        return cls(
            items=list(payload.get("value") or []),
            next_link=payload.get("@odata.nextLink"),
        )
