from __future__ import annotations

from fastapi import FastAPI, Query
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from app.domain_errors import (
    AuthenticationFailure,
    Conflict,
    DomainError,
    InvalidState,
    RateLimited,
    ValidationFailure,
)
from app.problem_details import (
    build_problem_details_response,
    domain_error_handler,
    request_validation_handler,
)


def test_problem_details_payload_contains_stable_code_and_rfc7807_fields() -> None:
    response = build_problem_details_response(
        DomainError(
            code="SAMPLE_ERROR",
            http_status=409,
            message="sample failed",
            details={"sample": True},
        )
    )

    assert response.status_code == 409
    assert response.media_type == "application/problem+json"

    body = response.body.decode("utf-8")
    assert '"type":"https://api.workmint.local/problems/sample_error"' in body
    assert '"title":"Conflict"' in body
    assert '"status":409' in body
    assert '"detail":"sample failed"' in body
    assert '"code":"SAMPLE_ERROR"' in body
    assert '"details":{"sample":true}' in body


def test_problem_details_carries_success_false_and_message() -> None:
    response = build_problem_details_response(
        ValidationFailure(code="QUANTITY_EXCEEDS_TARGET", message="Completed quantity cannot exceed target quantity")
    )

    body = response.body.decode("utf-8")
    assert response.status_code == 400
    assert '"success":false' in body
    assert '"message":"Completed quantity cannot exceed target quantity"' in body


def test_problem_details_omits_details_when_none() -> None:
    response = build_problem_details_response(
        InvalidState(code="TASK_INVALID_STATUS_FOR_CONFIRM", message="Task must be in completed status")
    )

    body = response.body.decode("utf-8")
    assert response.status_code == 400
    assert '"code":"TASK_INVALID_STATUS_FOR_CONFIRM"' in body
    assert '"details"' not in body


def test_category_errors_fix_http_status() -> None:
    assert AuthenticationFailure(code="X", message="x").http_status == 401
    assert Conflict(code="X", message="x").http_status == 409
    assert RateLimited(code="X", message="x").http_status == 429


def test_authentication_failure_sets_www_authenticate() -> None:
    response = build_problem_details_response(
        AuthenticationFailure(code="INVALID_TOKEN", message="Token expired")
    )
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_rate_limited_sets_retry_after() -> None:
    response = build_problem_details_response(
        RateLimited(code="LOGIN_RATE_LIMITED", message="slow down", details={"retry_after": 42})
    )
    assert response.status_code == 429
    assert response.headers["retry-after"] == "42"


def _sample_app() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/boom")
    def _boom():
        raise InvalidState(
            code="ROUTE_PROBLEM",
            message="route failed",
            details={"source": "test"},
        )

    @app.get("/paged")
    def _paged(limit: int = Query(10, ge=1, le=100)):
        return {"limit": limit}

    return app


def test_fastapi_exception_handler_maps_domain_error_to_problem_details() -> None:
    client = TestClient(_sample_app())
    response = client.get("/boom")

    assert response.status_code == 400
    assert response.headers["content-type"].startswith("application/problem+json")
    payload = response.json()
    assert payload["code"] == "ROUTE_PROBLEM"
    assert payload["detail"] == "route failed"
    assert payload["success"] is False


def test_request_validation_errors_are_reported_as_400() -> None:
    client = TestClient(_sample_app())
    response = client.get("/paged", params={"limit": 500})

    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "VALIDATION_FAILED"
    assert payload["details"]["errors"][0]["loc"] == ["query", "limit"]
