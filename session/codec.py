"""
Conversion between Session objects and Redis hash fields.

Session hashes use a fixed set of field names which are part of the
persisted layout and must not change:

    created_at, expires_at, id, user_key, ip, agent_os, agent_browser, meta

Timestamps are stored as RFC 3339 strings in UTC with microsecond
precision. Values written by older writers with nanosecond fractions or
a trailing "Z" are accepted and truncated to microseconds.

Metadata is stored as a JSON object. Older records used a delimited
``key:value;key:value;`` string; those are still decoded.
"""

import json
import re
from datetime import datetime, timedelta, timezone
from ipaddress import ip_address
from typing import Optional

from errors.exceptions import SessionDecodeError
from session.models import IPAddress, Session

FIELD_CREATED_AT = "created_at"
FIELD_EXPIRES_AT = "expires_at"
FIELD_ID = "id"
FIELD_USER_KEY = "user_key"
FIELD_IP = "ip"
FIELD_AGENT_OS = "agent_os"
FIELD_AGENT_BROWSER = "agent_browser"
FIELD_META = "meta"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>Z|[+-]\d{2}:\d{2})$"
)


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC already.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime for storage, e.g. ``2024-01-15T10:30:00.000000+00:00``."""
    return _as_utc(value).isoformat(timespec="microseconds")


def parse_timestamp(value: Optional[str], field_name: str) -> datetime:
    """
    Parse a stored timestamp.

    Args:
        value: The raw field value, None if the field is absent.
        field_name: Field name used in the error on failure.

    Returns:
        A timezone-aware datetime in UTC.

    Raises:
        SessionDecodeError: If the value is missing or not an RFC 3339
            timestamp with an explicit offset.
    """
    if not value:
        raise SessionDecodeError(field_name, "field is missing")

    match = _TIMESTAMP_RE.match(value.strip())
    if match is None:
        raise SessionDecodeError(field_name, f"unparsable timestamp {value!r}")

    fraction = (match.group("fraction") or "")[:6].ljust(6, "0")
    offset = match.group("offset")
    if offset == "Z":
        offset = "+00:00"

    try:
        parsed = datetime.fromisoformat(f"{match.group('base')}.{fraction}{offset}")
    except ValueError as e:
        raise SessionDecodeError(field_name, str(e)) from e

    return parsed.astimezone(timezone.utc)


def to_milliseconds(value: datetime) -> int:
    """Milliseconds since the Unix epoch, as used by PEXPIREAT."""
    return (_as_utc(value) - EPOCH) // timedelta(milliseconds=1)


def to_nanoseconds(value: datetime) -> int:
    """Nanoseconds since the Unix epoch, as used for user index scores."""
    return ((_as_utc(value) - EPOCH) // timedelta(microseconds=1)) * 1000


def encode_meta(meta: Optional[dict[str, str]]) -> Optional[str]:
    """Encode metadata as JSON. Returns None for an empty map so the field is omitted."""
    if not meta:
        return None
    return json.dumps(meta, sort_keys=True, separators=(",", ":"))


def decode_meta(value: Optional[str]) -> dict[str, str]:
    """
    Decode stored metadata.

    JSON objects are decoded directly. Anything else is treated as the
    legacy ``key:value;`` form, where segments that do not split into
    exactly one key and one value are ignored.
    """
    if not value:
        return {}

    try:
        decoded = json.loads(value)
    except ValueError:
        decoded = None

    if isinstance(decoded, dict):
        return {str(k): str(v) for k, v in decoded.items()}

    meta: dict[str, str] = {}
    for segment in value.split(";"):
        parts = segment.split(":")
        if len(parts) != 2:
            continue
        meta[parts[0]] = parts[1]
    return meta


def parse_ip(value: Optional[str]) -> Optional[IPAddress]:
    """Parse a stored address. Empty or unparsable values yield None."""
    if not value:
        return None
    try:
        return ip_address(value)
    except ValueError:
        return None


def encode_session(session: Session) -> dict[str, str]:
    """
    Convert a session into the field mapping written with HSET.

    The ``meta`` field is left out when the session has no metadata.
    """
    fields = {
        FIELD_CREATED_AT: format_timestamp(session.created_at),
        FIELD_EXPIRES_AT: format_timestamp(session.expires_at),
        FIELD_ID: session.id,
        FIELD_USER_KEY: session.user_key,
        FIELD_IP: str(session.ip) if session.ip is not None else "",
        FIELD_AGENT_OS: session.agent_os,
        FIELD_AGENT_BROWSER: session.agent_browser,
    }

    meta = encode_meta(session.meta)
    if meta is not None:
        fields[FIELD_META] = meta

    return fields


def decode_session(fields: dict[str, str]) -> Session:
    """
    Convert a non-empty HGETALL reply into a session.

    Raises:
        SessionDecodeError: If a required field is missing or malformed.
    """
    for required in (FIELD_ID, FIELD_USER_KEY):
        if not fields.get(required):
            raise SessionDecodeError(required, "field is missing")

    return Session(
        id=fields[FIELD_ID],
        user_key=fields[FIELD_USER_KEY],
        created_at=parse_timestamp(fields.get(FIELD_CREATED_AT), FIELD_CREATED_AT),
        expires_at=parse_timestamp(fields.get(FIELD_EXPIRES_AT), FIELD_EXPIRES_AT),
        ip=parse_ip(fields.get(FIELD_IP)),
        agent_os=fields.get(FIELD_AGENT_OS, ""),
        agent_browser=fields.get(FIELD_AGENT_BROWSER, ""),
        meta=decode_meta(fields.get(FIELD_META)),
    )
