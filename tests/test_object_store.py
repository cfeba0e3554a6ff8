import io

import pytest
from unittest.mock import MagicMock
from botocore.exceptions import ClientError

from pdf_rag_server.core.errors import StorageError
from pdf_rag_server.storage.object_store import ObjectStore


def _client_error(code, operation="HeadObject"):
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, operation)


@pytest.fixture
def s3():
    return MagicMock()


@pytest.fixture
def objects(s3):
    return ObjectStore(bucket_name="docs", client=s3)


@pytest.mark.asyncio
async def test_exists_true(objects, s3):
    s3.head_object.return_value = {"ContentLength": 10}

    assert await objects.exists("a.pdf") is True
    s3.head_object.assert_called_once_with(Bucket="docs", Key="a.pdf")


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
async def test_exists_false_on_not_found(objects, s3, code):
    s3.head_object.side_effect = _client_error(code)

    assert await objects.exists("a.pdf") is False


@pytest.mark.asyncio
async def test_exists_raises_on_other_errors(objects, s3):
    s3.head_object.side_effect = _client_error("AccessDenied")

    with pytest.raises(StorageError):
        await objects.exists("a.pdf")


@pytest.mark.asyncio
async def test_get_metadata(objects, s3):
    s3.head_object.return_value = {
        "ContentLength": 2048,
        "ContentType": "application/pdf",
    }

    metadata = await objects.get_metadata("a.pdf")

    assert metadata.size == 2048
    assert metadata.content_type == "application/pdf"
    assert metadata.last_modified is None


@pytest.mark.asyncio
async def test_download_reads_body(objects, s3):
    s3.get_object.return_value = {"Body": io.BytesIO(b"%PDF-1.4")}

    assert await objects.download("a.pdf") == b"%PDF-1.4"


@pytest.mark.asyncio
async def test_download_failure_raises(objects, s3):
    s3.get_object.side_effect = _client_error("NoSuchKey", "GetObject")

    with pytest.raises(StorageError):
        await objects.download("a.pdf")


@pytest.mark.asyncio
async def test_delete_reports_failure_without_raising(objects, s3):
    s3.delete_object.side_effect = _client_error("AccessDenied", "DeleteObject")

    assert await objects.delete("a.pdf") is False


@pytest.mark.asyncio
async def test_delete_success(objects, s3):
    assert await objects.delete("a.pdf") is True
    s3.delete_object.assert_called_once_with(Bucket="docs", Key="a.pdf")


def test_get_url(objects):
    assert objects.get_url("uploads/a.pdf").startswith("https://docs.s3.")
    assert objects.get_url("uploads/a.pdf").endswith(".amazonaws.com/uploads/a.pdf")


@pytest.mark.asyncio
async def test_check_bucket(objects, s3):
    await objects.check_bucket()
    s3.head_bucket.assert_called_once_with(Bucket="docs")


@pytest.mark.asyncio
async def test_check_bucket_failure_raises(objects, s3):
    s3.head_bucket.side_effect = _client_error("403", "HeadBucket")

    with pytest.raises(StorageError):
        await objects.check_bucket()
