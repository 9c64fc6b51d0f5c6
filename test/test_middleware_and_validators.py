import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.utils import content_disposition
from core.validators import clean_search_term, sanitize_filename, validate_extension, validate_file_size
from middleware.auth_middleware import is_public_path
from middleware.security import RateLimitMiddleware, SecurityHeadersMiddleware


def _tiny_app(per_minute):
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware, requests_per_minute=per_minute, requests_per_hour=1000)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    return app


def test_rate_limit_returns_429_with_retry_after():
    client = TestClient(_tiny_app(per_minute=2))

    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200
    limited = client.get("/ping")

    assert limited.status_code == 429
    assert limited.headers["retry-after"] == "60"
    assert limited.json()["detail"].startswith("Rate limit exceeded")


def test_security_headers():
    response = TestClient(_tiny_app(per_minute=10)).get("/ping")

    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"


def test_public_paths_match_exactly():
    assert is_public_path("/")
    assert is_public_path("/health")
    assert is_public_path("/api/auth/login/")
    assert not is_public_path("/api/admin/courses")
    assert not is_public_path("/api/auth/me")


@pytest.mark.parametrize("raw, expected", [
    ("notes.pdf", "notes.pdf"),
    ("C:\\Users\\sam\\week 1.pdf", "week 1.pdf"),
    ("../../secret.txt", "secret.txt"),
    ("Week 1 notes (v2).pdf", "Week 1 notes (v2).pdf"),
    ("r\u00e9sum\u00e9\r\n.pdf", "r\u00e9sum\u00e9.pdf"),
])
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected


def test_sanitize_filename_rejects_empty_names():
    with pytest.raises(ValueError):
        sanitize_filename("")
    with pytest.raises(ValueError):
        sanitize_filename("../..")


def test_file_checks():
    assert validate_extension("Users.CSV", {".csv"})
    assert not validate_extension("users.txt", {".csv"})
    assert validate_file_size(0, 10) == (False, "File is empty")
    assert validate_file_size(10, 10) == (True, None)
    assert validate_file_size(3 * 1024 * 1024, 2 * 1024 * 1024)[1] == "File too large: 3.00MB (max: 2MB)"


def test_clean_search_term():
    assert clean_search_term("  smith ") == "smith"
    assert clean_search_term("   ") is None
    assert clean_search_term(None) is None


def test_content_disposition_escapes_the_declared_name():
    assert content_disposition("notes.pdf") == "attachment; filename=\"notes.pdf\"; filename*=UTF-8''notes.pdf"

    header = content_disposition('r\u00e9sum\u00e9 "final".pdf')

    assert header == (
        'attachment; filename="r_sum_ \\"final\\".pdf"; '
        "filename*=UTF-8''r%C3%A9sum%C3%A9%20%22final%22.pdf"
    )
    assert header.isascii()
