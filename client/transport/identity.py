"""Transport identity resolution.

The generation server routes pushed events by the id it assigned to our
physical connection. Transports do not expose that id uniformly, so it is
resolved through an ordered chain of sources. The chain never raises and
never returns an empty string: when every source fails a generated token is
returned, and when resolution itself breaks an ``error-`` token is returned.
"""

import random
import re
import string
import time
from collections.abc import Callable, Sequence

import structlog

from transport.base import Transport

logger = structlog.get_logger(__name__)

# SockJS session URLs look like /<server-id>/<session-id>/<transport-name>
SESSION_URL_PATTERN = re.compile(r"/(\d+)/([^/]+)/(websocket|xhr_streaming)")
SESSION_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{8,}$")

_FALLBACK_ALPHABET = string.ascii_lowercase + string.digits

IdentitySource = Callable[[Transport], str | None]


def from_explicit_identity(transport: Transport) -> str | None:
    """Use the identity the transport advertises itself."""
    identity = transport.resolve_identity()
    return identity or None


def from_session_url(transport: Transport) -> str | None:
    """Extract the session segment from the connection or transport URL."""
    for url in (transport.url, transport.transport_url):
        if not url:
            continue
        match = SESSION_URL_PATTERN.search(url)
        if match and match.group(2):
            return match.group(2)
    return None


def from_identity_hints(transport: Transport) -> str | None:
    """Scan advertised properties for a session-named, token-shaped value."""
    for key, value in transport.identity_hints().items():
        if (
            isinstance(value, str)
            and "session" in key.lower()
            and SESSION_TOKEN_PATTERN.match(value)
        ):
            return value
    return None


DEFAULT_IDENTITY_CHAIN: tuple[tuple[str, IdentitySource], ...] = (
    ("explicit", from_explicit_identity),
    ("url", from_session_url),
    ("hints", from_identity_hints),
)


def fallback_identity(rng: random.Random | None = None) -> str:
    """Generate a ``fallback-<epoch-ms>-<suffix>`` token."""
    chooser = rng or random
    suffix = "".join(chooser.choices(_FALLBACK_ALPHABET, k=9))
    return f"fallback-{int(time.time() * 1000)}-{suffix}"


def resolve_transport_identity(
    transport: Transport,
    chain: Sequence[tuple[str, IdentitySource]] = DEFAULT_IDENTITY_CHAIN,
) -> str:
    """Resolve a non-empty identity for an open transport.

    Args:
        transport: The transport whose identity is needed.
        chain: Ordered (name, source) pairs; the first non-empty result wins.

    Returns:
        The resolved identity, a generated fallback token, or an
        ``error-<epoch-ms>`` token if resolution failed internally.
    """
    try:
        for source_name, source in chain:
            identity = source(transport)
            if identity:
                logger.info(
                    "transport_identity_resolved",
                    source=source_name,
                    identity=identity,
                )
                return identity

        identity = fallback_identity()
        logger.warning(
            "transport_identity_fallback",
            identity=identity,
            url=transport.url,
        )
        return identity
    except Exception as e:
        identity = f"error-{int(time.time() * 1000)}"
        logger.error(
            "transport_identity_resolution_failed",
            identity=identity,
            error=str(e),
        )
        return identity
