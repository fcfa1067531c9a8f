"""Tests for /upload*: resumable (TUS 1.0.0) and plain uploads through the gateway."""

from collections.abc import Callable
from unittest.mock import patch

from fastapi.testclient import TestClient

from mock_server.core.gateway import Gateway, GatewayPipeline

TUS = {"Tus-Resumable": "1.0.0"}
CHUNK = {**TUS, "Content-Type": "application/offset+octet-stream"}


def _create(client: TestClient, length: int) -> str:
    r = client.post("/upload", headers={**TUS, "Upload-Length": str(length)})
    assert r.status_code == 201
    return r.headers["Location"]


def test_options_advertises_capabilities(client: TestClient) -> None:
    r = client.options("/upload")
    assert r.status_code == 200
    assert r.headers["Tus-Resumable"] == "1.0.0"
    assert r.headers["Tus-Version"] == "1.0.0"
    assert r.headers["Tus-Extension"] == "creation"
    assert int(r.headers["Tus-Max-Size"]) > 0


def test_resumable_upload_flow(client: TestClient) -> None:
    """Create 100 bytes, send 40, replay offset 0 (409), HEAD, send remaining 60."""
    location = _create(client, 100)
    assert location.startswith("/upload/tus_")

    r = client.patch(location, content=b"a" * 40, headers={**CHUNK, "Upload-Offset": "0"})
    assert r.status_code == 200
    assert r.headers["Upload-Offset"] == "40"
    assert r.json()["complete"] is False

    r = client.patch(location, content=b"b" * 40, headers={**CHUNK, "Upload-Offset": "0"})
    assert r.status_code == 409
    assert r.headers["Upload-Offset"] == "40"

    r = client.head(location, headers=TUS)
    assert r.status_code == 200
    assert r.headers["Upload-Offset"] == "40"
    assert r.headers["Upload-Length"] == "100"
    assert r.headers["Cache-Control"] == "no-store"

    r = client.patch(location, content=b"c" * 60, headers={**CHUNK, "Upload-Offset": "40"})
    assert r.status_code == 200
    assert r.headers["Upload-Offset"] == "100"
    assert r.json()["complete"] is True


def test_create_requires_upload_length(client: TestClient) -> None:
    r = client.post("/upload", headers=TUS)
    assert r.status_code == 400
    assert "Upload-Length" in r.json()["message"]

    r = client.post("/upload", headers={**TUS, "Upload-Length": "-5"})
    assert r.status_code == 400


def test_unsupported_version_is_412(client: TestClient) -> None:
    r = client.post("/upload", headers={"Tus-Resumable": "0.2.2", "Upload-Length": "10"})
    assert r.status_code == 412
    assert r.headers["Tus-Version"] == "1.0.0"


def test_patch_wrong_content_type_is_415(client: TestClient) -> None:
    location = _create(client, 10)
    r = client.patch(
        location,
        content=b"12345",
        headers={**TUS, "Content-Type": "application/json", "Upload-Offset": "0"},
    )
    assert r.status_code == 415


def test_patch_unknown_upload_is_404(client: TestClient) -> None:
    r = client.patch(
        "/upload/tus_" + "0" * 32, content=b"x", headers={**CHUNK, "Upload-Offset": "0"}
    )
    assert r.status_code == 404
    assert client.head("/upload/tus_missing", headers=TUS).status_code == 404


def test_patch_past_declared_length_is_413(client: TestClient) -> None:
    location = _create(client, 4)
    r = client.patch(location, content=b"12345", headers={**CHUNK, "Upload-Offset": "0"})
    assert r.status_code == 413
    assert client.head(location, headers=TUS).headers["Upload-Offset"] == "0"


def test_unsupported_tus_method_is_405(client: TestClient) -> None:
    location = _create(client, 4)
    assert client.delete(location, headers=TUS).status_code == 405


def test_production_ceiling(make_client: Callable[..., TestClient]) -> None:
    """Production caps resumable and plain uploads at PRODUCTION_MAX_UPLOAD_SIZE."""
    client = make_client(ENVIRONMENT="production", PRODUCTION_MAX_UPLOAD_SIZE=1024)
    assert client.options("/upload").headers["Tus-Max-Size"] == "1024"
    r = client.post("/upload", headers={**TUS, "Upload-Length": "2048"})
    assert r.status_code == 413

    r = client.post(
        "/upload",
        content=b"x" * 2048,
        headers={"Content-Type": "application/octet-stream"},
    )
    assert r.status_code == 413
    assert r.json()["error"] == "Payload Too Large"


def test_tus_disabled(make_client: Callable[..., TestClient]) -> None:
    client = make_client(TUS_ENABLED=False)
    r = client.post("/upload", headers={**TUS, "Upload-Length": "10"})
    assert r.status_code == 404
    assert "Tus-Version" not in client.options("/upload").headers


def test_plain_raw_upload(client: TestClient) -> None:
    r = client.post(
        "/upload", content=b"raw-bytes", headers={"Content-Type": "application/octet-stream"}
    )
    assert r.status_code == 201
    data = r.json()
    assert data["upload_type"] == "raw"
    assert data["filename"].startswith("upload_")
    assert data["size"] == 9


def test_plain_put_uses_path_basename(client: TestClient) -> None:
    r = client.put(
        "/upload/report.csv", content=b"a,b\n1,2\n", headers={"Content-Type": "text/csv"}
    )
    assert r.status_code == 201
    assert r.json()["filename"] == "report.csv"
    assert [f["filename"] for f in client.get("/files").json()["files"]] == ["report.csv"]


def test_plain_multipart_upload(client: TestClient) -> None:
    r = client.post(
        "/upload",
        files=[
            ("file", ("a.txt", b"alpha", "text/plain")),
            ("file", ("b.txt", b"beta", "text/plain")),
        ],
    )
    assert r.status_code == 201
    data = r.json()
    assert data["upload_type"] == "multipart"
    assert [f["original_name"] for f in data["files"]] == ["a.txt", "b.txt"]


def test_plain_upload_errors(client: TestClient) -> None:
    assert client.get("/upload").status_code == 405
    r = client.post("/upload", content=b"data")
    assert r.status_code == 400
    r = client.post("/upload", content=b"", headers={"Content-Type": "application/octet-stream"})
    assert r.status_code == 400


def test_plain_put_cannot_touch_resumable_session(
    make_client: Callable[..., TestClient], make_gateway: Callable[..., Gateway]
) -> None:
    """A plain PUT to a session location is refused and the session bytes stay intact."""
    client = make_client()
    location = _create(client, 10)
    upload_id = location.rsplit("/", 1)[-1]
    r = client.patch(location, content=b"abcde", headers={**CHUNK, "Upload-Offset": "0"})
    assert r.status_code == 200

    r = client.put(
        location,
        content=b"XYZXYZXYZXYZXYZXYZ",
        headers={"Content-Type": "application/octet-stream"},
    )
    assert r.status_code == 400
    assert "reserved" in r.json()["message"]
    assert client.get("/files").json()["files"] == []

    r = client.patch(location, content=b"fghij", headers={**CHUNK, "Upload-Offset": "5"})
    assert r.status_code == 200
    assert r.json()["complete"] is True
    assert make_gateway().uploads.data_path(upload_id).read_bytes() == b"abcdefghij"


def test_production_refuses_oversized_body_before_pipeline(
    make_client: Callable[..., TestClient],
) -> None:
    """A declared length over the production ceiling is a 413 with CORS headers."""
    client = make_client(ENVIRONMENT="production", PRODUCTION_MAX_UPLOAD_SIZE=1024)
    with patch.object(GatewayPipeline, "handle") as handle:
        r = client.put(
            "/upload/big.bin",
            content=b"x" * 4096,
            headers={
                "Content-Type": "application/octet-stream",
                "Origin": "https://app.example",
            },
        )
    handle.assert_not_called()
    assert r.status_code == 413
    assert r.json()["error"] == "Payload Too Large"
    assert "1024" in r.json()["message"]
    assert r.headers["Access-Control-Allow-Origin"] == "https://app.example"
    assert client.get("/files").status_code == 200
    assert client.get("/files").json()["files"] == []
