"""
Unit tests for session and error endpoints.
"""

import pytest
from httpx import AsyncClient


async def create(async_client: AsyncClient, text: str = "Add password reset") -> dict:
    response = await async_client.post("/api/v1/sessions", json={"input": text})
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_create_session(async_client: AsyncClient) -> None:
    """Test that creating a session runs the analysis."""
    data = await create(async_client)

    assert data["success"] is True
    assert data["session"]["current_step"] == "requirement_confirmation"
    assert len(data["session"]["requirements"]["processed_requirements"]) == 1


@pytest.mark.asyncio
async def test_create_session_requires_input(async_client: AsyncClient) -> None:
    response = await async_client.post("/api/v1/sessions", json={"input": ""})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_and_list_sessions(async_client: AsyncClient) -> None:
    """Test fetching one session and listing summaries."""
    session_id = (await create(async_client))["session"]["id"]

    response = await async_client.get(f"/api/v1/sessions/{session_id}")
    assert response.status_code == 200
    assert response.json()["id"] == session_id

    response = await async_client.get("/api/v1/sessions")
    assert response.status_code == 200
    summaries = response.json()
    assert summaries[0]["id"] == session_id
    assert summaries[0]["requirements"] == 1


@pytest.mark.asyncio
async def test_unknown_session_is_404(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/sessions/session_missing")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "SESSION_NOT_FOUND"


@pytest.mark.asyncio
async def test_run_command(async_client: AsyncClient) -> None:
    """Test confirming a step through the command endpoint."""
    session_id = (await create(async_client))["session"]["id"]

    response = await async_client.post(
        f"/api/v1/sessions/{session_id}/commands",
        json={"command": "confirm_step"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["session"]["current_step"] == "suggestion_review"
    assert len(data["session"]["suggestions"]["suggestions"]) == 3


@pytest.mark.asyncio
async def test_failed_command_reports_error(async_client: AsyncClient) -> None:
    """Test that command failures come back as error contexts, not HTTP errors."""
    session_id = (await create(async_client))["session"]["id"]

    response = await async_client.post(
        f"/api/v1/sessions/{session_id}/commands",
        json={"command": "export_tickets"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert data["error"]["type"] == "export_error"
    assert data["error"]["recovery_options"][-1]["id"] == "view_logs"


@pytest.mark.asyncio
async def test_unknown_command_is_rejected(async_client: AsyncClient) -> None:
    session_id = (await create(async_client))["session"]["id"]

    response = await async_client.post(
        f"/api/v1/sessions/{session_id}/commands",
        json={"command": "dance"},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_load_session_with_missing_fields(async_client: AsyncClient) -> None:
    response = await async_client.post("/api/v1/sessions/load", json={"data": {"id": "session_x"}})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "SESSION_ERROR"


@pytest.mark.asyncio
async def test_save_and_load_through_api(async_client: AsyncClient, tmp_path) -> None:
    session_id = (await create(async_client))["session"]["id"]
    path = tmp_path / "api-session.json"

    response = await async_client.post(
        f"/api/v1/sessions/{session_id}/commands",
        json={"command": "save_session", "data": {"path": str(path)}},
    )
    assert response.json()["side_effect"]["path"] == str(path)

    await async_client.delete(f"/api/v1/sessions/{session_id}")
    response = await async_client.post("/api/v1/sessions/load", json={"path": str(path)})

    assert response.status_code == 200
    assert response.json()["session"]["id"] == session_id


@pytest.mark.asyncio
async def test_delete_session(async_client: AsyncClient) -> None:
    session_id = (await create(async_client))["session"]["id"]

    response = await async_client.delete(f"/api/v1/sessions/{session_id}")
    assert response.status_code == 200
    assert response.json() == {"deleted": True, "session_id": session_id}

    response = await async_client.delete(f"/api/v1/sessions/{session_id}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_error_endpoints(async_client: AsyncClient) -> None:
    """Test error statistics, export and clearing."""
    session_id = (await create(async_client))["session"]["id"]
    await async_client.post(
        f"/api/v1/sessions/{session_id}/commands",
        json={"command": "export_tickets"},
    )

    stats = (await async_client.get("/api/v1/errors/stats")).json()
    assert stats["errors_by_type"]["export_error"] == 1

    report = (await async_client.get("/api/v1/errors/export")).json()
    assert report["error_count"] == stats["total_errors"]

    assert (await async_client.delete("/api/v1/errors")).json() == {"cleared": True}
    stats = (await async_client.get("/api/v1/errors/stats")).json()
    assert stats["total_errors"] == 0
