"""Tests for object downloads through the bucket."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from httpx import AsyncClient

from curio_market.core.config import settings
from curio_market.services.object_storage import (
    ObjectNotFoundError,
    ObjectStorageError,
    ObjectStorageService,
    object_storage,
)


def client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "HeadObject")


@pytest.fixture
def s3(monkeypatch):
    monkeypatch.setattr(settings, "OBJECT_STORAGE_BUCKET", "curio-test")
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://bucket.example/uploads/owl-1?sig=abc"
    return client


@pytest.fixture
def storage(s3):
    service = ObjectStorageService()
    service._client = s3
    return service


class TestDownloadUrl:

    @pytest.mark.asyncio
    async def test_signs_existing_object(self, storage, s3):
        url = await storage.get_download_url("/objects/uploads/owl-1")

        assert url == "https://bucket.example/uploads/owl-1?sig=abc"
        s3.head_object.assert_called_once_with(Bucket="curio-test", Key="uploads/owl-1")

    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    @pytest.mark.asyncio
    async def test_missing_key(self, storage, s3, code):
        s3.head_object.side_effect = client_error(code)

        with pytest.raises(ObjectNotFoundError):
            await storage.get_download_url("/objects/uploads/gone")
        s3.generate_presigned_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_lookup_failure_is_not_a_missing_object(self, storage, s3):
        s3.head_object.side_effect = client_error("AccessDenied")

        with pytest.raises(ObjectStorageError) as exc:
            await storage.get_download_url("/objects/uploads/owl-1")
        assert not isinstance(exc.value, ObjectNotFoundError)

    @pytest.mark.asyncio
    async def test_parent_segments_rejected(self, storage, s3):
        with pytest.raises(ObjectNotFoundError):
            await storage.get_download_url("/objects/uploads/../secrets")
        s3.head_object.assert_not_called()


class TestServeObject:

    @pytest.mark.asyncio
    async def test_redirects_to_signed_url(self, client: AsyncClient, s3, monkeypatch):
        monkeypatch.setattr(object_storage, "_client", s3)

        response = await client.get("/objects/uploads/owl-1")

        assert response.status_code == 302
        assert response.headers["location"] == "https://bucket.example/uploads/owl-1?sig=abc"

    @pytest.mark.asyncio
    async def test_missing_object_is_404(self, client: AsyncClient, s3, monkeypatch):
        monkeypatch.setattr(object_storage, "_client", s3)
        s3.head_object.side_effect = client_error("404")

        response = await client.get("/objects/uploads/gone")

        assert response.status_code == 404
        assert response.json() == {"error": "Object not found"}

    @pytest.mark.asyncio
    async def test_unreachable_store_is_503(self, client: AsyncClient, s3, monkeypatch):
        monkeypatch.setattr(object_storage, "_client", s3)
        s3.head_object.side_effect = client_error("AccessDenied")

        response = await client.get("/objects/uploads/owl-1")

        assert response.status_code == 503
