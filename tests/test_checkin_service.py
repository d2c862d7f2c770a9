# tests/test_checkin_service.py

import asyncio
import base64
import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from services.ticket_issuance.services.issuance_service import TicketIssuanceService
from services.ticket_validation.models.ticket import CheckInStatus
from services.ticket_validation.services.checkin_service import CheckInService
from shared.cache.redis_client import checkin_stats_key
from shared.database.models import EventCheckin
from shared.tickets.codec import encode_compact, encode_legacy
from shared.tickets.payload import TicketEvent, TicketHolder, TicketPayload
from tests.utils.data import (
    ADMIN,
    EVENT_ID,
    ORGANIZER,
    OTHER_EVENT_ID,
    OTHER_ORGANIZER,
    REGISTRATION_ID,
    STUDENT_ID,
)


async def issue(db) -> str:
    result = await TicketIssuanceService.issue_ticket(db, EVENT_ID, REGISTRATION_ID, STUDENT_ID)
    return result["token"]


def compact_token(event_id=EVENT_ID, registration_id=REGISTRATION_ID, **changes) -> str:
    payload = TicketPayload(
        holder=TicketHolder(name="Asha Rao"),
        event=TicketEvent(id=event_id, title="Hack Night"),
        registration_id=registration_id,
        **changes,
    )
    return encode_compact(payload)


class TestIdempotentCheckIn:

    async def test_first_scan_confirms_then_already_admitted(self, db):
        token = await issue(db)

        first = await CheckInService.attempt_check_in(db, token, ADMIN)
        second = await CheckInService.attempt_check_in(db, token, ADMIN)

        assert first["status"] == CheckInStatus.CONFIRMED
        assert first["valid"] and first["success"]
        assert not first["already_checked_in"]

        assert second["status"] == CheckInStatus.ALREADY_ADMITTED
        assert second["valid"] and not second["success"]
        assert second["already_checked_in"]
        assert abs(second["checked_in_at"] - first["checked_in_at"]) < timedelta(seconds=1)

    async def test_holder_data_comes_from_the_store(self, db):
        # El nombre del token no coincide: se muestra el del registro
        token = encode_compact(TicketPayload(
            holder=TicketHolder(name="Someone Else"),
            event=TicketEvent(id=EVENT_ID),
            registration_id=REGISTRATION_ID,
        ))

        result = await CheckInService.attempt_check_in(db, token, ADMIN)

        assert result["holder"]["name"] == "Asha Rao"
        assert result["holder"]["email"] == "asha@campus.edu"
        assert result["holder"]["roll_number"] == "21CS042"
        assert result["event"]["title"] == "Hack Night"
        assert result["registration_id"] == str(REGISTRATION_ID)

    async def test_record_is_created_on_first_scan(self, db):
        result = await CheckInService.attempt_check_in(db, compact_token(), ADMIN)

        assert result["status"] == CheckInStatus.CONFIRMED
        checkin = (await db.execute(select(EventCheckin))).scalar_one()
        assert checkin.qr_token is None
        assert checkin.is_checked_in is True
        assert checkin.checked_in_by == ADMIN["user_id"]

    async def test_any_dialect_reconciles_the_same_record(self, db):
        await CheckInService.attempt_check_in(db, compact_token(), ADMIN)

        legacy = encode_legacy(TicketPayload(
            holder=TicketHolder(name="Asha Rao"),
            event=TicketEvent(id=EVENT_ID),
            registration_id=REGISTRATION_ID,
        ))
        result = await CheckInService.attempt_check_in(db, legacy, ADMIN)

        assert result["status"] == CheckInStatus.ALREADY_ADMITTED

    async def test_concurrent_scans_confirm_exactly_once(self, session_maker, db):
        await issue(db)
        token = compact_token()

        async def scan_at_gate():
            async with session_maker() as session:
                return await CheckInService.attempt_check_in(session, token, ADMIN)

        results = await asyncio.gather(*(scan_at_gate() for _ in range(4)))

        statuses = [result["status"] for result in results]
        assert statuses.count(CheckInStatus.CONFIRMED) == 1
        assert statuses.count(CheckInStatus.ALREADY_ADMITTED) == 3


class TestRejections:

    @pytest.mark.parametrize("token, message", [
        ("hello world", "Formato de QR inválido"),
        ("N:Asha Rao|T:Hack Night", "Estructura de token inválida"),
        ("N:Asha Rao|EID:hack|RID:42", "Estructura de token inválida"),
        ("N:Asha Rao|EID:7|RID:999", "Usuario no registrado para este evento"),
        ("N:Asha Rao|EID:8|RID:42", "Usuario no registrado para este evento"),
        ("N:Asha Rao|EID:7|RID:42|FB:1", "Ticket de respaldo: no verificable en el servidor"),
    ])
    async def test_rejected_tokens(self, db, token, message):
        result = await CheckInService.attempt_check_in(db, token, ADMIN)

        assert result["status"] == CheckInStatus.REJECTED
        assert not result["valid"]
        assert result["error_message"] == message

    async def test_expired_token(self, db):
        expired = datetime.now(timezone.utc) - timedelta(minutes=1)
        token = encode_legacy(TicketPayload(
            holder=TicketHolder(name="Asha Rao"),
            event=TicketEvent(id=EVENT_ID),
            registration_id=REGISTRATION_ID,
            expires_at=expired,
        ))

        result = await CheckInService.attempt_check_in(db, token, ADMIN)

        assert result["error_message"] == "Código QR expirado"

    async def test_mixed_timezone_legacy_token_is_rejected_not_crashed(self, db):
        raw = json.dumps({
            "registration_id": REGISTRATION_ID,
            "issued_at": "2025-03-01T10:00:00Z",
            "exp": "2025-03-08T10:00:00",
            "participant": {"name": "Asha Rao"},
            "event": {"id": EVENT_ID},
        })
        token = base64.b64encode(raw.encode("utf-8")).decode("ascii")

        result = await CheckInService.attempt_check_in(db, token, ADMIN)

        assert result["status"] == CheckInStatus.REJECTED
        assert result["error_message"] == "Código QR expirado"

    async def test_expired_record(self, db):
        await issue(db)
        checkin = (await db.execute(select(EventCheckin))).scalar_one()
        checkin.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        await db.commit()

        result = await CheckInService.attempt_check_in(db, compact_token(), ADMIN)

        assert result["error_message"] == "Código QR expirado"

    async def test_scanner_bound_to_another_event(self, db):
        result = await CheckInService.attempt_check_in(db, compact_token(), ADMIN, event_id=OTHER_EVENT_ID)

        assert result["error_message"] == "Ticket no corresponde a este evento"

    async def test_rejection_does_not_admit(self, db):
        await CheckInService.attempt_check_in(db, compact_token(), ADMIN, event_id=OTHER_EVENT_ID)

        result = await CheckInService.attempt_check_in(db, compact_token(), ADMIN)

        assert result["status"] == CheckInStatus.CONFIRMED


class TestOperatorPermissions:

    async def test_organizer_of_the_event(self, db):
        result = await CheckInService.attempt_check_in(db, compact_token(), ORGANIZER)

        assert result["status"] == CheckInStatus.CONFIRMED

    async def test_organizer_of_another_event(self, db):
        result = await CheckInService.attempt_check_in(db, compact_token(), OTHER_ORGANIZER)

        assert result["error_message"] == "No tienes permiso para hacer check-in en este evento"

    async def test_scanner_role(self, db):
        operator = {"user_id": "gate-1", "email": "gate@campus.edu", "role": "scanner"}

        result = await CheckInService.attempt_check_in(db, compact_token(), operator)

        assert result["status"] == CheckInStatus.CONFIRMED


class TestEventStats:

    async def test_counts_and_cache_invalidation(self, db, no_redis):
        before = await CheckInService.get_event_stats(db, EVENT_ID)
        assert before == {"event_id": EVENT_ID, "total_registrations": 1, "checked_in": 0, "pending": 1}
        assert checkin_stats_key(EVENT_ID) in no_redis

        await CheckInService.attempt_check_in(db, compact_token(), ADMIN)
        assert checkin_stats_key(EVENT_ID) not in no_redis

        after = await CheckInService.get_event_stats(db, EVENT_ID)
        assert after["checked_in"] == 1
        assert after["pending"] == 0

    async def test_unknown_event(self, db):
        assert await CheckInService.get_event_stats(db, 999) is None
