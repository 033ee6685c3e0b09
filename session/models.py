"""
Session record model.

A Session is the storage-level view of a single logged-in session: the
attributes the session-management layer persists and reads back.
"""

from dataclasses import dataclass, field
from datetime import datetime
from ipaddress import IPv4Address, IPv6Address
from typing import Optional, Union

IPAddress = Union[IPv4Address, IPv6Address]


@dataclass
class Session:
    """
    A persisted session.

    Attributes:
        id: Unique session identifier.
        user_key: Key of the user owning the session. One user may own
            many concurrent sessions.
        created_at: When the session was created.
        expires_at: When the session expires. Redis deletes the record
            at this instant.
        ip: Originating network address, or None when unknown.
        agent_os: Client operating system label.
        agent_browser: Client application label.
        meta: Free-form string metadata.
    """
    id: str
    user_key: str
    created_at: datetime
    expires_at: datetime
    ip: Optional[IPAddress] = None
    agent_os: str = ""
    agent_browser: str = ""
    meta: dict[str, str] = field(default_factory=dict)
