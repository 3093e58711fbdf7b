"""
Tests for main FastAPI application endpoints
"""
import io

from fastapi.testclient import TestClient
from PIL import Image as PILImage  # type: ignore

from compression.codec import bytes_to_data_url
from conftest import make_image_bytes


def test_root_endpoint(client: TestClient):
    """Test the root endpoint returns a valid response"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "Image Compress API" in data["message"]
    assert response.headers.get("X-Request-Id")


def test_request_id_is_echoed_when_provided(client: TestClient):
    rid = "test-request-id-123"
    resp = client.get("/", headers={"X-Request-Id": rid})
    assert resp.status_code == 200
    assert resp.headers.get("X-Request-Id") == rid


def test_compress_missing_input(client: TestClient):
    """Neither file nor data_url given"""
    response = client.post("/api/compress")
    assert response.status_code == 400
    assert response.headers.get("X-Request-Id")


def test_compress_upload_returns_image_bytes(client: TestClient):
    raw = make_image_bytes((400, 300), noisy=True)
    files = {"file": ("photo.png", raw, "image/png")}
    data = {"type": "image/jpeg", "quality": "0.7", "width": "200", "orientation": "6"}
    response = client.post("/api/compress", files=files, data=data)
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.headers["X-Original-Size"] == str(len(raw))
    assert int(response.headers["X-Compressed-Size"]) == len(response.content)
    assert response.headers["X-Image-Width"] == "150"
    assert response.headers["X-Image-Height"] == "200"
    with PILImage.open(io.BytesIO(response.content)) as im:
        assert im.size == (150, 200)


def test_compress_with_budget(client: TestClient, noisy_png_bytes):
    files = {"file": ("noise.png", noisy_png_bytes, "image/png")}
    data = {"size": "100", "minWidth": "200", "type": "image/jpeg"}
    response = client.post("/api/compress", files=files, data=data)
    assert response.status_code == 200
    assert len(response.content) < 100 * 1024


def test_compress_budget_already_met_returns_original(client: TestClient, sample_image_bytes):
    files = {"file": ("small.png", sample_image_bytes, "image/png")}
    response = client.post("/api/compress", files=files, data={"size": "5000"})
    assert response.status_code == 200
    assert response.content == sample_image_bytes
    assert response.headers["content-type"] == "image/png"
    assert "X-Image-Width" not in response.headers


def test_compress_data_url_endpoint(client: TestClient):
    raw = make_image_bytes((300, 200), noisy=True)
    data = {"data_url": bytes_to_data_url(raw, "image/png"), "scale": "0.5", "type": "image/jpeg"}
    response = client.post("/api/compress/data-url", data=data)
    assert response.status_code == 200
    payload = response.json()
    assert payload["data_url"].startswith("data:image/jpeg;base64,")
    assert payload["mime"] == "image/jpeg"
    assert payload["width"] == 150
    assert payload["height"] == 100
    assert payload["original_size"] == len(raw)
    assert payload["size"] < len(raw)


def test_compress_rejects_non_image_data_string(client: TestClient):
    response = client.post("/api/compress", data={"data_url": "hello world"})
    assert response.status_code == 400


def test_compress_rejects_non_image_upload(client: TestClient):
    files = {"file": ("doc.pdf", b"%PDF-1.4 fake", "application/pdf")}
    response = client.post("/api/compress", files=files)
    assert response.status_code == 415


def test_compress_rejects_corrupt_image(client: TestClient):
    files = {"file": ("broken.png", b"not an image at all", "image/png")}
    response = client.post("/api/compress", files=files)
    assert response.status_code == 422


def test_compress_rejects_invalid_options(client: TestClient, sample_image_bytes):
    files = {"file": ("small.png", sample_image_bytes, "image/png")}
    response = client.post("/api/compress", files=files, data={"width": "-5"})
    assert response.status_code == 400
    assert "width" in response.json()["detail"]


def test_compress_rejects_oversized_upload(client: TestClient, monkeypatch, sample_image_bytes):
    import main

    monkeypatch.setattr(main, "MAX_FILE_SIZE", 10)
    files = {"file": ("small.png", sample_image_bytes, "image/png")}
    response = client.post("/api/compress", files=files)
    assert response.status_code == 413


def test_compress_accepts_data_url_over_one_megabyte(client: TestClient):
    raw = make_image_bytes((700, 600), noisy=True)
    url = bytes_to_data_url(raw, "image/png")
    assert len(url) > 1024 * 1024
    files = {"data_url": (None, url)}
    response = client.post("/api/compress", files=files, data={"type": "image/jpeg"})
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.headers["X-Original-Size"] == str(len(raw))


def test_compress_rejects_data_url_field_over_limit(client: TestClient, monkeypatch):
    import main

    monkeypatch.setattr(main, "MAX_DATA_URL_LENGTH", 1024)
    url = bytes_to_data_url(make_image_bytes((200, 200), noisy=True), "image/png")
    response = client.post("/api/compress", files={"data_url": (None, url)})
    assert response.status_code == 413


def test_compress_rejects_data_url_over_max_file_size(client: TestClient, monkeypatch):
    import main

    monkeypatch.setattr(main, "MAX_FILE_SIZE", 100)
    url = bytes_to_data_url(make_image_bytes((200, 200), noisy=True), "image/png")
    response = client.post("/api/compress", data={"data_url": url})
    assert response.status_code == 413


def test_compress_rejects_huge_output_geometry(client: TestClient, sample_image_bytes):
    files = {"file": ("small.png", sample_image_bytes, "image/png")}
    response = client.post("/api/compress", files=files, data={"width": "100000"})
    assert response.status_code == 400
    assert "exceeds" in response.json()["detail"]
