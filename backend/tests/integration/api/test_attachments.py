"""
Integration tests for ticket attachment endpoints.

WHAT: Tests for upload URLs, registration (single and batch), download
URLs and deletion over HTTP.

WHY: The client drives a two-phase upload. The API must hand out a path
it will later accept, refuse a path naming another ticket, and report
batch failures per file.

HOW: Uses httpx AsyncClient with FakeStorage in place of S3.
"""

import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from workorders.models.ticket import TicketAttachment
from tests.factories import AttachmentFactory, TicketFactory


@pytest_asyncio.fixture
async def ticket(db_session, tenancy):
    return await TicketFactory.create(db_session, tenancy.building, tenancy.space, created_by=tenancy.resident)


def _file(ticket_id, name="leak.jpg", size=48213, path=None) -> dict:
    return {
        "file_path": path or f"tickets/{ticket_id}/3fa2b1c0_{name}",
        "file_name": name,
        "file_type": "image/jpeg",
        "file_size": size,
    }


async def _attachment_count(db_session: AsyncSession) -> int:
    return await db_session.scalar(select(func.count()).select_from(TicketAttachment))


class TestUploadUrl:
    """Tests for POST /api/tickets/{id}/attachments/upload-url."""

    @pytest.mark.asyncio
    async def test_issued_path_is_registrable(self, client: AsyncClient, ticket, tenancy, auth_headers):
        """
        Test the full two-phase flow.

        WHY: The path handed out in phase one must pass the path check in
        phase two.
        """
        headers = auth_headers(tenancy.resident)

        response = await client.post(
            f"/api/tickets/{ticket.id}/attachments/upload-url",
            headers=headers,
            json={"file_name": "under sink.jpg", "file_type": "image/jpeg", "file_size": 48213},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["file_path"].startswith(f"tickets/{ticket.id}/")
        assert data["file_path"].endswith("_under_sink.jpg")
        assert data["upload_url"].startswith("https://storage.test/put/")
        assert data["expires_in"] == 3600

        register = await client.post(
            f"/api/tickets/{ticket.id}/attachments",
            headers=headers,
            json=_file(ticket.id, name="under sink.jpg", path=data["file_path"]),
        )
        assert register.status_code == 201

    @pytest.mark.asyncio
    async def test_oversize_refused(self, client: AsyncClient, ticket, tenancy, auth_headers):
        response = await client.post(
            f"/api/tickets/{ticket.id}/attachments/upload-url",
            headers=auth_headers(tenancy.resident),
            json={"file_name": "video.mp4", "file_type": "video/mp4", "file_size": 50 * 1024 * 1024},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestRegisterAttachment:
    """Tests for POST /api/tickets/{id}/attachments."""

    @pytest.mark.asyncio
    async def test_register(self, client: AsyncClient, db_session: AsyncSession, ticket, tenancy, auth_headers):
        response = await client.post(
            f"/api/tickets/{ticket.id}/attachments",
            headers=auth_headers(tenancy.resident),
            json=_file(ticket.id),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["ticket_id"] == str(ticket.id)
        assert data["uploaded_by_user_id"] == tenancy.resident.id
        assert await _attachment_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_path_of_other_ticket(
        self, client: AsyncClient, db_session: AsyncSession, ticket, tenancy, auth_headers
    ):
        """
        Test that a file stored under another ticket cannot be attached here.

        WHY: The storage path is the tenancy guard for blobs; accepting it
        would let a caller link someone else's file.
        """
        other = await TicketFactory.create(
            db_session, tenancy.building, tenancy.space, created_by=tenancy.resident
        )

        response = await client.post(
            f"/api/tickets/{ticket.id}/attachments",
            headers=auth_headers(tenancy.resident),
            json=_file(ticket.id, path=f"tickets/{other.id}/photo.jpg"),
        )

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "PATH_MISMATCH"
        assert await _attachment_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_malformed_path(self, client: AsyncClient, db_session: AsyncSession, ticket, tenancy, auth_headers):
        response = await client.post(
            f"/api/tickets/{ticket.id}/attachments",
            headers=auth_headers(tenancy.resident),
            json=_file(ticket.id, path="uploads/photo.jpg"),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_PATH"
        assert await _attachment_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_outsider_gets_not_found(self, client: AsyncClient, ticket, tenancy, auth_headers):
        response = await client.post(
            f"/api/tickets/{ticket.id}/attachments",
            headers=auth_headers(tenancy.outsider),
            json=_file(ticket.id),
        )

        assert response.status_code == 404


class TestBatchRegister:
    """Tests for POST /api/tickets/{id}/attachments/batch."""

    @pytest.mark.asyncio
    async def test_each_file_reported(
        self, client: AsyncClient, db_session: AsyncSession, ticket, tenancy, auth_headers
    ):
        """
        Test that bad files fail alone.

        WHY: A resident uploading four photos should not lose three good
        ones because one was too large.
        """
        files = [
            _file(ticket.id, name="one.jpg"),
            _file(ticket.id, name="two.jpg", path=f"tickets/{uuid.uuid4()}/two.jpg"),
            _file(ticket.id, name="three.jpg", size=20 * 1024 * 1024),
            _file(ticket.id, name="four.jpg"),
        ]

        response = await client.post(
            f"/api/tickets/{ticket.id}/attachments/batch",
            headers=auth_headers(tenancy.resident),
            json={"files": files},
        )

        assert response.status_code == 200
        data = response.json()
        assert [r["ok"] for r in data["results"]] == [True, False, False, True]
        assert data["results"][1]["error"]["code"] == "PATH_MISMATCH"
        assert data["results"][2]["error"]["code"] == "VALIDATION_ERROR"
        assert data["registered"] == 2
        assert data["failed"] == 2
        assert await _attachment_count(db_session) == 2

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, client: AsyncClient, ticket, tenancy, auth_headers):
        response = await client.post(
            f"/api/tickets/{ticket.id}/attachments/batch",
            headers=auth_headers(tenancy.resident),
            json={"files": []},
        )

        assert response.status_code == 400


class TestDownloadAndDelete:
    """Tests for download URLs and deletion."""

    @pytest.mark.asyncio
    async def test_download_url(self, client: AsyncClient, db_session: AsyncSession, ticket, tenancy, auth_headers):
        attachment = await AttachmentFactory.create(db_session, ticket, tenancy.resident)

        response = await client.get(
            f"/api/attachments/{attachment.id}/download-url",
            headers=auth_headers(tenancy.org_admin),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["download_url"] == f"https://storage.test/get/{attachment.file_path}?expires=3600"
        assert data["expires_in"] == 3600

    @pytest.mark.asyncio
    async def test_download_url_hidden_from_outsider(
        self, client: AsyncClient, db_session: AsyncSession, ticket, tenancy, auth_headers
    ):
        attachment = await AttachmentFactory.create(db_session, ticket, tenancy.resident)

        response = await client.get(
            f"/api/attachments/{attachment.id}/download-url",
            headers=auth_headers(tenancy.outsider),
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete(
        self, client: AsyncClient, db_session: AsyncSession, ticket, tenancy, auth_headers, storage
    ):
        attachment = await AttachmentFactory.create(db_session, ticket, tenancy.resident)

        response = await client.delete(
            f"/api/attachments/{attachment.id}",
            headers=auth_headers(tenancy.resident),
        )

        assert response.status_code == 200
        assert response.json() == {"deleted": True, "id": str(attachment.id)}
        assert storage.deleted == [attachment.file_path]
        assert await _attachment_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_delete_survives_storage_failure(
        self, client: AsyncClient, db_session: AsyncSession, ticket, tenancy, auth_headers, storage
    ):
        """
        Test that an unreachable bucket does not block deletion.

        WHY: The metadata row is what users see; leaving it pointing at a
        half-deleted object is worse than orphaning the blob.
        """
        attachment = await AttachmentFactory.create(db_session, ticket, tenancy.resident)
        storage.fail_deletes = True

        response = await client.delete(
            f"/api/attachments/{attachment.id}",
            headers=auth_headers(tenancy.platform_admin),
        )

        assert response.status_code == 200
        assert await _attachment_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_resident_cannot_delete_others_upload(
        self, client: AsyncClient, db_session: AsyncSession, ticket, tenancy, auth_headers
    ):
        attachment = await AttachmentFactory.create(db_session, ticket, tenancy.org_member)

        response = await client.delete(
            f"/api/attachments/{attachment.id}",
            headers=auth_headers(tenancy.resident),
        )

        assert response.status_code == 403
        assert await _attachment_count(db_session) == 1
