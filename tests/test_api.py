# tests/test_api.py

import httpx
import pytest
import pytest_asyncio

from main import app
from pdfsvc.app.main import app as pdf_app
from services.ticket_validation.services.checkin_client import CheckInClient
from services.ticket_validation.services.validation_orchestrator import ScannerDevice, ScanState
from shared.auth.dependencies import get_current_user
from shared.auth.jwt_handler import create_access_token
from shared.database.session import get_db
from shared.tickets.exceptions import CheckInRejectedError
from tests.utils.data import ADMIN, EVENT_ID, OTHER_EVENT_ID, REGISTRATION_ID, STUDENT, STUDENT_ID

API = "http://test/api/v1/tickets"


@pytest.fixture
def operator():
    """Usuario autenticado de la request; los tests lo cambian según el caso"""
    return dict(ADMIN)


@pytest_asyncio.fixture
async def api(session_maker, seeded, operator):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    async def override_get_current_user():
        return operator

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def act_as(operator, user):
    operator.clear()
    operator.update(user)


async def issue(api, operator) -> str:
    act_as(operator, STUDENT)
    response = await api.post(f"{API}/issue", json={"event_id": EVENT_ID, "registration_id": REGISTRATION_ID})
    assert response.status_code == 200
    act_as(operator, ADMIN)
    return response.json()["token"]


class TestHealth:

    async def test_health(self, api):
        response = await api.get("/health")

        assert response.status_code == 200
        assert response.json()["service"] == "campuspass-api"


class TestIssueEndpoint:

    async def test_issue_is_repeatable(self, api, operator):
        first = await issue(api, operator)
        second = await issue(api, operator)

        assert first == second

    async def test_foreign_registration(self, api, operator):
        act_as(operator, {"user_id": "someone-else", "email": "x@campus.edu", "role": "student"})

        response = await api.post(f"{API}/issue", json={"event_id": EVENT_ID, "registration_id": REGISTRATION_ID})

        assert response.status_code == 400
        assert response.json()["detail"] == "Registro inválido"

    async def test_unknown_event(self, api, operator):
        act_as(operator, STUDENT)

        response = await api.post(f"{API}/issue", json={"event_id": 999, "registration_id": REGISTRATION_ID})

        assert response.status_code == 404


class TestValidateEndpoint:

    async def test_validate_twice(self, api, operator):
        token = await issue(api, operator)

        first = await api.post(f"{API}/validate", json={"token": token})
        second = await api.post(f"{API}/validate", json={"token": token})

        assert first.status_code == 200
        assert first.json()["status"] == "confirmed"
        assert first.json()["holder"]["name"] == "Asha Rao"
        assert second.status_code == 200
        assert second.json()["status"] == "already_admitted"
        assert second.json()["already_checked_in"] is True

    async def test_business_rejection_is_200(self, api):
        response = await api.post(f"{API}/validate", json={"token": "hello world"})

        assert response.status_code == 200
        assert response.json()["valid"] is False
        assert response.json()["error_message"] == "Formato de QR inválido"

    async def test_students_cannot_scan(self, api, operator):
        act_as(operator, STUDENT)

        response = await api.post(f"{API}/validate", json={"token": "N:A|EID:7|RID:42"})

        assert response.status_code == 403


class TestLookupEndpoints:

    async def test_photo(self, api):
        response = await api.get(f"{API}/registrations/{REGISTRATION_ID}/photo")

        assert response.status_code == 200
        assert response.json()["photo_url"] == "https://cdn.campus.edu/photos/42.jpg"

    async def test_photo_of_unknown_registration(self, api):
        response = await api.get(f"{API}/registrations/999/photo")

        assert response.status_code == 404

    async def test_checkin_record(self, api, operator):
        await issue(api, operator)

        response = await api.get(f"{API}/checkins/{REGISTRATION_ID}")

        assert response.status_code == 200
        assert response.json()["user_id"] == STUDENT_ID
        assert response.json()["is_checked_in"] is False

    async def test_missing_checkin_record(self, api):
        response = await api.get(f"{API}/checkins/{REGISTRATION_ID}")

        assert response.status_code == 404

    async def test_stats(self, api):
        response = await api.get(f"{API}/events/{OTHER_EVENT_ID}/check-in/stats")

        assert response.status_code == 200
        assert response.json() == {
            "event_id": OTHER_EVENT_ID, "total_registrations": 0, "checked_in": 0, "pending": 0,
        }

    async def test_stats_of_unknown_event(self, api):
        response = await api.get(f"{API}/events/999/check-in/stats")

        assert response.status_code == 404


class TestScannerAgainstBackend:
    """Scanner completo (cliente httpx + orquestador) contra la app real"""

    @pytest.fixture
    def client(self, api):
        app.dependency_overrides.pop(get_current_user, None)
        return CheckInClient(
            base_url=API,
            auth_token=create_access_token({"sub": "gate-1", "role": "scanner"}),
            transport=httpx.ASGITransport(app=app),
        )

    async def test_scan_twice(self, client):
        device = ScannerDevice(client, event_id=EVENT_ID)

        first = await device.scan("N:Asha Rao|T:Hack Night|EID:7|RID:42")
        await device.settle()
        second = await device.scan("N:Asha Rao|T:Hack Night|EID:7|RID:42")
        await device.settle()

        assert first.state == ScanState.CONFIRMED
        assert second.state == ScanState.ALREADY_ADMITTED
        assert device.current_view.photo_url == "https://cdn.campus.edu/photos/42.jpg"

    @pytest.mark.usefixtures("client")
    async def test_student_token_is_rejected(self):
        client = CheckInClient(
            base_url=API,
            auth_token=create_access_token({"sub": STUDENT_ID, "role": "student"}),
            transport=httpx.ASGITransport(app=app),
        )

        with pytest.raises(CheckInRejectedError) as exc_info:
            await client.attempt_check_in("N:Asha Rao|EID:7|RID:42")

        assert exc_info.value.status_code == 403


class TestPdfService:

    @pytest_asyncio.fixture
    async def pdf_api(self):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=pdf_app), base_url="http://pdf") as client:
            yield client

    async def test_ticket_pdf(self, pdf_api):
        response = await pdf_api.post("/tickets/pdf", json={"token": "N:Asha Rao|EID:7|RID:42"})

        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")
        assert "ticket-42.pdf" in response.headers["content-disposition"]

    async def test_ticket_image(self, pdf_api):
        response = await pdf_api.post("/tickets/image", json={"token": "N:Asha Rao|EID:7|RID:42", "is_checked_in": True})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"

    async def test_bulk_requires_tickets(self, pdf_api):
        response = await pdf_api.post("/tickets/pdf/bulk", json={"tickets": []})

        assert response.status_code == 400

    async def test_empty_token(self, pdf_api):
        response = await pdf_api.post("/tickets/pdf", json={"token": "  "})

        assert response.status_code == 400

    async def test_qr_png(self, pdf_api):
        response = await pdf_api.get("/qr/RID:42")

        assert response.status_code == 200
        assert response.content.startswith(b"\x89PNG")
