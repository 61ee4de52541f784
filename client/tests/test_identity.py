"""Tests for transport/identity.py -- transport identity fallback chain."""

import random
import re

from testing import ScriptedTransport
from transport.identity import (
    fallback_identity,
    from_identity_hints,
    from_session_url,
    resolve_transport_identity,
)

FALLBACK_PATTERN = re.compile(r"^fallback-\d+-[a-z0-9]{9}$")


# =========================================================================
# Individual sources
# =========================================================================


class TestSessionUrlSource:
    def test_extracts_session_segment_from_transport_url(self) -> None:
        transport = ScriptedTransport(
            "http://server/ws/generation",
            transport_url="ws://server/ws/generation/123/abc123xy/websocket",
        )
        assert from_session_url(transport) == "abc123xy"

    def test_accepts_xhr_streaming_urls(self) -> None:
        transport = ScriptedTransport(
            "http://server/ws/generation/007/streamtok/xhr_streaming",
        )
        assert from_session_url(transport) == "streamtok"

    def test_connection_url_checked_before_transport_url(self) -> None:
        transport = ScriptedTransport(
            "http://server/ws/1/from-url/websocket",
            transport_url="ws://server/ws/2/from-transport/websocket",
        )
        assert from_session_url(transport) == "from-url"

    def test_non_matching_urls_yield_nothing(self) -> None:
        transport = ScriptedTransport(
            "http://server/ws/generation",
            transport_url="ws://server/ws/generation/info",
        )
        assert from_session_url(transport) is None


class TestIdentityHintsSource:
    def test_picks_session_named_token(self) -> None:
        transport = ScriptedTransport(
            hints={"server_id": "123", "sessionToken": "tok_ABC-1234"},
        )
        assert from_identity_hints(transport) == "tok_ABC-1234"

    def test_ignores_short_values(self) -> None:
        transport = ScriptedTransport(hints={"session": "short"})
        assert from_identity_hints(transport) is None

    def test_ignores_non_session_keys(self) -> None:
        transport = ScriptedTransport(hints={"token": "abcdefgh12345"})
        assert from_identity_hints(transport) is None

    def test_ignores_non_string_values(self) -> None:
        transport = ScriptedTransport(hints={"session_number": 1234567890})
        assert from_identity_hints(transport) is None

    def test_ignores_values_with_invalid_characters(self) -> None:
        transport = ScriptedTransport(hints={"session": "has spaces in it"})
        assert from_identity_hints(transport) is None


# =========================================================================
# Chain
# =========================================================================


class TestResolveTransportIdentity:
    """The chain returns the first non-empty result and never raises."""

    def test_explicit_identity_wins(self) -> None:
        transport = ScriptedTransport(
            transport_url="ws://server/ws/1/from-url/websocket",
            identity="explicit-id",
            hints={"session": "from-hints-123"},
        )
        assert resolve_transport_identity(transport) == "explicit-id"

    def test_empty_explicit_identity_falls_through_to_url(self) -> None:
        transport = ScriptedTransport(
            transport_url="ws://server/ws/1/from-url/websocket",
            identity="",
        )
        assert resolve_transport_identity(transport) == "from-url"

    def test_url_before_hints(self) -> None:
        transport = ScriptedTransport(
            transport_url="ws://server/ws/1/from-url/websocket",
            hints={"session": "from-hints-123"},
        )
        assert resolve_transport_identity(transport) == "from-url"

    def test_hints_used_when_url_has_no_session(self) -> None:
        transport = ScriptedTransport(hints={"session": "from-hints-123"})
        assert resolve_transport_identity(transport) == "from-hints-123"

    def test_generates_fallback_when_nothing_matches(self) -> None:
        identity = resolve_transport_identity(ScriptedTransport())
        assert FALLBACK_PATTERN.match(identity)

    def test_internal_failure_returns_error_token(self) -> None:
        def broken(transport: ScriptedTransport) -> str | None:
            raise RuntimeError("introspection failed")

        identity = resolve_transport_identity(ScriptedTransport(), chain=(("broken", broken),))
        assert re.match(r"^error-\d+$", identity)

    def test_custom_chain_order(self) -> None:
        chain = (
            ("first", lambda t: None),
            ("second", lambda t: "second-id"),
            ("third", lambda t: "third-id"),
        )
        assert resolve_transport_identity(ScriptedTransport(), chain=chain) == "second-id"


class TestFallbackIdentity:
    def test_format(self) -> None:
        assert FALLBACK_PATTERN.match(fallback_identity())

    def test_seeded_rng_is_deterministic_in_suffix(self) -> None:
        a = fallback_identity(random.Random(7)).rsplit("-", 1)[1]
        b = fallback_identity(random.Random(7)).rsplit("-", 1)[1]
        assert a == b
