"""HTTP-level tests for the captures, media, uploads and health routers."""

import pytest


async def _upload(client, data: bytes, name: str = "photo.jpg", mime: str = "image/jpeg") -> str:
    response = await client.post("/api/uploads", files={"file": (name, data, mime)})
    assert response.status_code == 201
    return response.json()["storage_locator"]


class TestCaptureEndpoints:
    @pytest.mark.asyncio
    async def test_submit_photo_capture(self, client, visit_stop, task_queue, png_factory):
        locator = await _upload(client, png_factory(), "lobby.png", "image/png")

        response = await client.post(
            "/api/captures",
            json={
                "visit_stop_id": "V1",
                "capture_type": "photo",
                "storage_locator": locator,
                "location": {"lat": 55.68, "lng": 12.57},
                "file_name": "lobby.png",
                "mime_type": "image/png",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["id"]
        assert body["media_asset_id"]
        assert task_queue.names == [("process_image", body["media_asset_id"])]

        media = await client.get(f"/api/media/{body['media_asset_id']}")
        assert media.json()["original_filename"] == "lobby.png"
        assert media.json()["status"] == "processing"

    @pytest.mark.asyncio
    async def test_missing_visit_stop_is_validation_error(self, client):
        response = await client.post("/api/captures", json={"capture_type": "note"})

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_unknown_visit_stop_is_create_error(self, client):
        response = await client.post(
            "/api/captures", json={"visit_stop_id": "nowhere", "capture_type": "note"}
        )

        assert response.status_code == 500
        assert response.json()["error"]["type"] == "capture_create_failed"

    @pytest.mark.asyncio
    async def test_list_captures(self, client, visit_stop):
        for caption in ("first", "second"):
            await client.post(
                "/api/captures",
                json={"visit_stop_id": "V1", "capture_type": "note", "caption": caption},
            )

        response = await client.get("/api/captures", params={"visit_stop_id": "V1"})

        assert response.status_code == 200
        assert [c["caption"] for c in response.json()] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_list_requires_visit_stop(self, client):
        response = await client.get("/api/captures")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_patch_capture(self, client, visit_stop):
        created = await client.post(
            "/api/captures", json={"visit_stop_id": "V1", "capture_type": "reaction"}
        )
        capture_id = created.json()["id"]

        empty = await client.patch(f"/api/captures/{capture_id}", json={})
        updated = await client.patch(
            f"/api/captures/{capture_id}", json={"sentiment": "positive"}
        )

        assert empty.status_code == 400
        assert empty.json()["error"]["message"] == "No fields to update"
        assert updated.status_code == 200
        assert updated.json()["sentiment"] == "positive"

    @pytest.mark.asyncio
    async def test_delete_capture_cascades(self, client, visit_stop, png_factory):
        locator = await _upload(client, png_factory())
        created = await client.post(
            "/api/captures",
            json={"visit_stop_id": "V1", "capture_type": "photo", "storage_locator": locator},
        )
        body = created.json()

        response = await client.delete(f"/api/captures/{body['id']}")

        assert response.status_code == 204
        media = await client.get(f"/api/media/{body['media_asset_id']}")
        assert media.status_code == 404
        assert media.json()["error"]["type"] == "not_found"


class TestMediaEndpoints:
    @pytest.mark.asyncio
    async def test_upload_image(self, client, task_queue, png_factory):
        response = await client.post(
            "/api/media/upload",
            files={"file": ("floorplan.png", png_factory(), "image/png")},
            data={"property_id": "P1"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "processing"
        assert body["file_type"] == "image"
        assert body["property_id"] == "P1"
        assert body["storage_locator"]
        assert task_queue.names == [("process_image", body["id"])]

    @pytest.mark.asyncio
    async def test_upload_rejects_mime_type(self, client):
        response = await client.post(
            "/api/media/upload",
            files={"file": ("tool.exe", b"MZ", "application/x-msdownload")},
        )

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_upload_succeeds_when_dispatch_fails(self, client, task_queue, png_factory):
        task_queue.fail = True

        response = await client.post(
            "/api/media/upload",
            files={"file": ("facade.png", png_factory(), "image/png")},
        )

        assert response.status_code == 201
        status = await client.get(f"/api/media/{response.json()['id']}/status")
        assert status.json()["status"] == "processing"

    @pytest.mark.asyncio
    async def test_document_upload_is_ready(self, client):
        response = await client.post(
            "/api/media/upload",
            files={"file": ("brief.doc", b"doc-bytes", "application/msword")},
        )

        assert response.json()["status"] == "ready"

    @pytest.mark.asyncio
    async def test_svg_upload_skips_image_pipeline(self, client, task_queue):
        svg = b"<svg xmlns='http://www.w3.org/2000/svg'/>"
        response = await client.post(
            "/api/media/upload",
            files={"file": ("floorplan.svg", svg, "image/svg+xml")},
        )

        assert response.status_code == 201
        assert response.json()["file_type"] == "document"
        assert response.json()["status"] == "ready"
        assert task_queue.tasks == []

    @pytest.mark.asyncio
    async def test_retry_while_processing_is_rejected(self, client, png_factory):
        uploaded = await client.post(
            "/api/media/upload", files={"file": ("a.png", png_factory(), "image/png")}
        )
        media_id = uploaded.json()["id"]

        response = await client.post(f"/api/media/{media_id}/retry")

        assert response.status_code == 409
        assert response.json()["error"]["type"] == "not_failed"
        status = await client.get(f"/api/media/{media_id}/status")
        assert status.json()["status"] == "processing"

    @pytest.mark.asyncio
    async def test_webhook_failure_then_retry(self, client, task_queue, webhook_auth, png_factory):
        uploaded = await client.post(
            "/api/media/upload", files={"file": ("a.png", png_factory(), "image/png")}
        )
        media_id = uploaded.json()["id"]

        failed = await client.post(
            "/api/media/webhook",
            json={"media_asset_id": media_id, "status": "failed", "error": "Decoder crashed"},
            headers=webhook_auth,
        )
        assert failed.json()["status"] == "failed"
        assert failed.json()["processing_error"] == "Decoder crashed"

        retried = await client.post(f"/api/media/{media_id}/retry")

        assert retried.status_code == 200
        assert retried.json() == {"id": media_id, "status": "processing", "dispatch": "enqueued"}
        assert task_queue.names.count(("process_image", media_id)) == 2

    @pytest.mark.asyncio
    async def test_webhook_ready(self, client, webhook_auth, pdf_factory):
        uploaded = await client.post(
            "/api/media/upload",
            files={"file": ("plan.pdf", pdf_factory(), "application/pdf")},
        )
        media_id = uploaded.json()["id"]

        response = await client.post(
            "/api/media/webhook",
            json={
                "media_asset_id": media_id,
                "status": "ready",
                "derivatives": {"page_count": 2, "extracted_text": "Floor 1"},
            },
            headers=webhook_auth,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
        assert response.json()["processed_at"] is not None
        media = await client.get(f"/api/media/{media_id}")
        assert media.json()["page_count"] == 2

    @pytest.mark.asyncio
    async def test_webhook_requires_secret(self, client):
        response = await client.post(
            "/api/media/webhook",
            json={"media_asset_id": "x", "status": "ready"},
            headers={"Authorization": "Bearer wrong"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_status_shape(self, client, png_factory):
        uploaded = await client.post(
            "/api/media/upload", files={"file": ("a.png", png_factory(), "image/png")}
        )

        status = await client.get(f"/api/media/{uploaded.json()['id']}/status")

        assert set(status.json()) == {
            "id",
            "status",
            "processed_at",
            "processing_error",
            "thumbnail_locator",
        }

    @pytest.mark.asyncio
    async def test_delete_media(self, client, storage, png_factory):
        uploaded = await client.post(
            "/api/media/upload", files={"file": ("a.png", png_factory(), "image/png")}
        )
        body = uploaded.json()

        response = await client.delete(f"/api/media/{body['id']}")

        assert response.status_code == 204
        assert not await storage.exists(body["storage_locator"])
        assert (await client.get(f"/api/media/{body['id']}")).status_code == 404


class TestHealth:
    @pytest.mark.asyncio
    async def test_ready(self, client):
        response = await client.get("/health/ready")
        assert response.status_code == 200
        assert response.json() == {"ready": True}

    @pytest.mark.asyncio
    async def test_health_reports_missing_queue(self, client):
        response = await client.get("/health/")
        body = response.json()
        assert body["database"] == "healthy"
        assert body["storage"] == "healthy"
        assert body["task_queue"] == "unavailable"
        assert body["status"] == "degraded"
