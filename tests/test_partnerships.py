from __future__ import annotations

import pytest

from partner_me.core.errors import NotFoundError, ValidationError
from partner_me.partnerships import service
from partner_me.storage.models import BusinessIdea
from tests.conftest import (
    build_sqlite_session_factory,
    create_api_test_context,
    reset_runtime_caches,
    teardown_api_test_context,
)


@pytest.fixture
def session():
    reset_runtime_caches()
    factory = build_sqlite_session_factory()
    with factory() as db_session:
        yield db_session
    reset_runtime_caches()


def _idea(session, title: str = "Food truck") -> str:
    idea = BusinessIdea(title=title, description="Street food on wheels.", budget_min=10, budget_max=20)
    session.add(idea)
    session.commit()
    return idea.id


def test_create_partnership_request(session) -> None:
    idea_id = _idea(session)

    request = service.create_partnership_request(
        session,
        payload={"business_idea_id": idea_id, "name": " Ana ", "phone_number": "+1 555 123 4567", "role": "HELPER"},
    )

    assert request.status == "PENDING"
    assert request.name == "Ana"
    item = service.serialize_request(request, business_idea_title="Food truck")
    assert item.business_idea_title == "Food truck"


def test_create_partnership_request_validation(session) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        service.create_partnership_request(
            session,
            payload={"business_idea_id": "missing", "name": "Ana", "phone_number": "5551234567", "role": "OUTLET"},
        )
    assert exc_info.value.code == "BUSINESS_IDEA_NOT_FOUND"

    idea_id = _idea(session)
    with pytest.raises(ValidationError) as exc_info:
        service.create_partnership_request(
            session,
            payload={"business_idea_id": idea_id, "name": "Ana", "phone_number": "5551234567", "role": "INVESTOR"},
        )
    assert "role" in exc_info.value.details


def test_list_filters_and_status_update(session) -> None:
    truck = _idea(session, "Food truck")
    bakery = _idea(session, "Bakery")
    helper = service.create_partnership_request(
        session,
        payload={"business_idea_id": truck, "name": "Ana", "phone_number": "5551234567", "role": "HELPER"},
    )
    service.create_partnership_request(
        session,
        payload={"business_idea_id": bakery, "name": "Ben", "phone_number": "5557654321", "role": "OUTLET"},
    )

    everything = service.list_partnership_requests(session)
    assert {title for _request, title in everything} == {"Food truck", "Bakery"}

    helpers = service.list_partnership_requests(session, filters={"role": "HELPER"})
    assert [(request.id, title) for request, title in helpers] == [(helper.id, "Food truck")]

    updated = service.update_partnership_status(session, request_id=helper.id, payload={"status": "CONTACTED"})
    assert updated.status == "CONTACTED"
    contacted = service.list_partnership_requests(session, filters={"status": "CONTACTED", "business_idea_id": truck})
    assert [request.id for request, _title in contacted] == [helper.id]

    with pytest.raises(ValidationError):
        service.update_partnership_status(session, request_id=helper.id, payload={"status": "DONE"})
    with pytest.raises(NotFoundError):
        service.update_partnership_status(session, request_id="missing", payload={"status": "ACCEPTED"})


def test_partnership_api(monkeypatch, tmp_path) -> None:
    context = create_api_test_context(monkeypatch, tmp_path)
    try:
        with context.session_factory() as db_session:
            idea_id = _idea(db_session)

        created = context.client.post(
            "/api/partnership-requests",
            json={"business_idea_id": idea_id, "name": "Ana", "phone_number": "5551234567", "role": "OUTLET"},
        )
        assert created.status_code == 201
        assert created.json()["message"] == "Partnership request submitted successfully"
        request_id = created.json()["data"]["id"]
        assert created.json()["data"]["business_idea_title"] == "Food truck"

        assert context.client.get("/api/partnership-requests").status_code == 401
        listed = context.client.get(
            "/api/partnership-requests",
            params={"status": "PENDING"},
            headers=context.admin_headers,
        )
        assert [item["id"] for item in listed.json()["data"]] == [request_id]

        bad_filter = context.client.get(
            "/api/partnership-requests",
            params={"role": "INVESTOR"},
            headers=context.admin_headers,
        )
        assert bad_filter.status_code == 400

        accepted = context.client.patch(
            f"/api/partnership-requests/{request_id}",
            json={"status": "ACCEPTED"},
            headers=context.admin_headers,
        )
        assert accepted.json()["data"]["status"] == "ACCEPTED"
    finally:
        teardown_api_test_context()
