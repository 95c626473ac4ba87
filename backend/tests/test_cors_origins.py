from fastapi.testclient import TestClient

from backend.app.main import (
    LOCAL_DEVELOPMENT_ORIGINS,
    _normalize_origin,
    _read_allowed_origins,
    _resolve_allowed_origins,
    app,
)


def test_normalize_origin_strips_whitespace_and_trailing_slash():
    assert _normalize_origin("  https://assets.example.com/ ") == "https://assets.example.com"
    assert _normalize_origin("   ") is None


def test_read_allowed_origins_deduplicates():
    assert _read_allowed_origins(
        ["https://a.example.com/", "https://a.example.com", "", "https://b.example.com"]
    ) == ["https://a.example.com", "https://b.example.com"]


def test_resolve_allowed_origins_accepts_commas_and_whitespace(monkeypatch):
    monkeypatch.setenv(
        "BACKEND_ALLOWED_ORIGINS",
        "https://assets.example.com, https://it.example.com https://ops.example.com",
    )

    origins = _resolve_allowed_origins()

    assert origins == sorted(
        {
            "https://assets.example.com",
            "https://it.example.com",
            "https://ops.example.com",
            *LOCAL_DEVELOPMENT_ORIGINS,
        }
    )


def test_assets_endpoint_includes_cors_headers_for_local_dev_origin():
    client = TestClient(app)
    origin = sorted(LOCAL_DEVELOPMENT_ORIGINS)[0]

    response = client.options(
        "/assets",
        headers={
            "Origin": origin,
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 200
    assert response.headers.get("access-control-allow-origin") == origin
