# tests/test_parser.py

import base64
import json
from datetime import datetime
from urllib.parse import quote

import pytest

from shared.tickets.codec import encode_compact, encode_legacy
from shared.tickets.parser import TokenDialect, parse_token


VERBOSE_TICKET = """EVENT REGISTRATION TICKET
PARTICIPANT INFORMATION
Name: Asha Rao
Email: asha@campus.edu
Roll Number: 21CS042
Department: Computer Science
Year: 3
Semester: 6
EVENT INFORMATION
Event: Hack Night
Location: Lab 3
Date: 2025-03-01
Time: 18:00
ID: 7-42"""


class TestDialectDetection:

    def test_compact_token(self, asha_payload):
        result = parse_token(encode_compact(asha_payload))

        assert result.recognized
        assert result.dialect == TokenDialect.COMPACT
        assert result.payload.holder.name == "Asha Rao"
        assert result.server_verifiable

    def test_legacy_base64_token(self, asha_payload):
        result = parse_token(encode_legacy(asha_payload))

        assert result.dialect == TokenDialect.LEGACY_BASE64
        assert result.payload.registration_id == "42"
        assert result.payload.event.id == "7"

    def test_verbose_line_format(self):
        result = parse_token(VERBOSE_TICKET)

        assert result.dialect == TokenDialect.LINES
        payload = result.payload
        assert payload.holder.name == "Asha Rao"
        assert payload.holder.roll_number == "21CS042"
        assert payload.holder.class_or_semester == "6"
        assert payload.event.title == "Hack Night"
        assert payload.event.id == "7"
        assert payload.event.start_time == datetime(2025, 3, 1, 18, 0)
        # El formato por líneas no trae registration_id
        assert not result.server_verifiable

    def test_terse_labels_with_section_markers(self):
        text = "PARTICIPANT:\nName: Asha Rao\nDept: CS\nEVENT:\nTitle: Hack Night\nLoc: Lab 3"

        payload = parse_token(text).payload

        assert payload.holder.department == "CS"
        assert payload.event.location == "Lab 3"

    def test_compact_keys_one_per_line(self):
        result = parse_token("N:Asha Rao\nT:Hack Night\nEID:7\nRID:42")

        assert result.dialect == TokenDialect.LINES
        assert result.payload.registration_id == "42"
        assert result.server_verifiable

    def test_partial_payload_is_valid(self):
        result = parse_token("N:Asha Rao|T:Hack Night")

        assert result.recognized
        assert result.payload.registration_id is None
        assert result.payload.holder.email is None
        assert not result.server_verifiable

    def test_fallback_token_is_not_server_verifiable(self, asha_payload):
        token = encode_compact(asha_payload.model_copy(update={"is_fallback": True}))

        result = parse_token(token)

        assert result.recognized
        assert result.payload.has_identifiers
        assert not result.server_verifiable


class TestUrlEmbedded:

    def test_qr_path_segment(self, asha_payload):
        inner = encode_legacy(asha_payload)

        result = parse_token(f"https://tickets.campus.edu/qr/{quote(inner, safe='')}")

        assert result.dialect == TokenDialect.LEGACY_BASE64
        assert result.token == inner
        assert result.payload.registration_id == "42"

    def test_trailing_path_segment_with_compact_token(self, asha_payload):
        inner = encode_compact(asha_payload)

        result = parse_token(f"https://campus.edu/t/{quote(inner, safe='')}")

        assert result.dialect == TokenDialect.COMPACT
        assert result.payload.event.id == "7"

    def test_query_parameter(self, asha_payload):
        inner = encode_legacy(asha_payload)

        result = parse_token(f"https://campus.edu/verify?token={quote(inner, safe='')}")

        assert result.token == inner
        assert result.payload.holder.name == "Asha Rao"

    def test_url_without_token_is_unrecognized(self):
        result = parse_token("https://campus.edu/")

        assert not result.recognized

    def test_nested_url_is_not_followed(self):
        nested = quote("https://evil.example.com/qr/abc", safe="")

        result = parse_token(f"https://campus.edu/verify?token={nested}")

        assert not result.recognized


class TestUnrecognizedInput:

    @pytest.mark.parametrize("raw", [
        "hello world",
        "",
        "   ",
        "12345",
        "ZXhhbXBsZQ==",  # base64 de "example"
        "{\"json\": true}",
        "|||",
    ])
    def test_never_raises(self, raw):
        result = parse_token(raw)

        assert not result.recognized
        assert result.payload is None
        assert result.dialect is None

    def test_non_string_input(self):
        result = parse_token(None)

        assert not result.recognized


def _legacy(**fields) -> str:
    data = {"registration_id": 42, "participant": {"name": "Asha Rao"}, "event": {"id": 7}}
    data.update(fields)
    return base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")


class TestMalformedLegacyFields:

    def test_aware_issue_with_naive_exp(self):
        result = parse_token(_legacy(issued_at="2025-03-01T10:00:00Z", exp="2025-03-08T10:00:00"))

        assert result.recognized
        assert result.dialect == TokenDialect.LEGACY_BASE64
        assert result.server_verifiable
        assert result.payload.expires_at.tzinfo is not None

    @pytest.mark.parametrize("fields", [
        {"issued_at": "2025-03-01T10:00:00+05:30", "exp": "2025-03-01T09:00:00"},
        {"issued_at": "2025-03-01T10:00:00", "exp": 1740866400000},
        {"exp": float("nan")},
        {"exp": float("inf")},
        {"exp": "soon"},
        {"issued_at": ["2025-03-01"]},
        {"event": {"id": 7, "start_time": {"date": "2025-03-01"}}},
        {"participant": "Asha Rao", "event": {"id": 7, "title": "Hack Night"}},
    ])
    def test_field_shapes_never_raise(self, fields):
        result = parse_token(_legacy(**fields))

        assert result.recognized
        assert result.payload.event.id == "7"
