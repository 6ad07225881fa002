from app.db.models import RequestStatus, VisitRequest

API = "/api/v1"


def payload_for(visitor, member, company, **overrides):
    body = {
        "visitorId": visitor.id,
        "companyId": company.id,
        "memberId": member.id,
        "purpose": "meeting",
        "duration": 30,
    }
    body.update(overrides)
    return body


def submit(client, visitor, member, company, **overrides):
    return client.post(f"{API}/requests", json=payload_for(visitor, member, company, **overrides))


def test_create_returns_created_envelope(client, broadcaster, visitor, member, company):
    response = submit(client, visitor, member, company, purposeDescription="Quarterly review")
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["request"]["status"] == "pending"
    assert body["data"]["request"]["queuePosition"] == 1
    assert body["data"]["notifications"]["email"]["success"] is True
    assert [event for event, _, _ in broadcaster.events] == ["new-request", "request-update"]


def test_create_validation_errors_are_400_with_fields(client, visitor, member, company):
    response = submit(client, visitor, member, company, duration=2, purpose="party")
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    fields = {error["field"] for error in body["errors"]}
    assert {"duration", "purpose"} <= fields


def test_duplicate_create_is_409(client, visitor, member, company):
    assert submit(client, visitor, member, company).status_code == 201
    response = submit(client, visitor, member, company)
    assert response.status_code == 409
    assert response.json() == {"success": False, "message": "You already have a pending request with this member"}


def test_blacklisted_visitor_is_403(client, db, make_visitor, member, company):
    banned = make_visitor(phone="+2348040000001", blacklisted=True)
    response = submit(client, banned, member, company)
    assert response.status_code == 403
    assert db.query(VisitRequest).count() == 0


def test_unknown_company_is_404(client, visitor, member, company):
    response = client.post(f"{API}/requests", json=payload_for(visitor, member, company, companyId="nope"))
    assert response.status_code == 404
    assert response.json()["message"] == "Company not found"


def test_create_is_rate_limited_per_ip(client, make_visitor, member, company):
    for index in range(3):
        visitor = make_visitor(phone=f"+234804100000{index}")
        assert submit(client, visitor, member, company).status_code == 201

    late = make_visitor(phone="+2348041000009")
    response = submit(client, late, member, company)
    assert response.status_code == 429
    assert response.json()["success"] is False

    for index in range(3):
        forged = client.post(
            f"{API}/requests",
            json=payload_for(late, member, company),
            headers={"X-Forwarded-For": f"10.1.1.{index}"},
        )
        assert forged.status_code == 429


def test_member_accepts_own_request(client, visitor, member, company, member_headers):
    request_id = submit(client, visitor, member, company).json()["data"]["request"]["id"]
    response = client.put(
        f"{API}/requests/{request_id}/status",
        json={"action": "accept", "message": "See you at 10"},
        headers=member_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Request accepted successfully"
    assert body["data"]["request"]["status"] == "accepted"
    assert body["data"]["request"]["memberResponse"]["message"] == "See you at 10"
    assert body["data"]["request"]["entryDetails"]["allowedAt"] is not None


def test_reschedule_without_time_is_400(client, visitor, member, company, member_headers):
    request_id = submit(client, visitor, member, company).json()["data"]["request"]["id"]
    response = client.put(
        f"{API}/requests/{request_id}/status", json={"action": "reschedule"}, headers=member_headers
    )
    assert response.status_code == 400


def test_respond_requires_member_token(client, visitor, member, company, admin_headers):
    request_id = submit(client, visitor, member, company).json()["data"]["request"]["id"]
    missing = client.put(f"{API}/requests/{request_id}/status", json={"action": "accept"})
    assert missing.status_code == 401
    assert missing.json() == {"success": False, "message": "Missing token"}

    admin = client.put(f"{API}/requests/{request_id}/status", json={"action": "accept"}, headers=admin_headers)
    assert admin.status_code == 403


def test_gate_flow_over_http(client, db, visitor, member, company, member_headers, security_headers):
    request_id = submit(client, visitor, member, company).json()["data"]["request"]["id"]

    early = client.put(f"{API}/requests/{request_id}/enter", json={}, headers=security_headers)
    assert early.status_code == 409

    client.put(f"{API}/requests/{request_id}/status", json={"action": "accept"}, headers=member_headers)
    entered = client.put(
        f"{API}/requests/{request_id}/enter",
        json={"entryGate": "North", "securityPersonnel": "Musa"},
        headers=security_headers,
    )
    assert entered.status_code == 200
    assert entered.json()["data"]["request"]["status"] == RequestStatus.in_progress.value

    exited = client.put(f"{API}/requests/{request_id}/exit", headers=security_headers)
    assert exited.status_code == 200
    data = exited.json()["data"]["request"]
    assert data["status"] == "completed"
    assert data["totalDuration"] == 0

    db.expire_all()
    assert db.get(VisitRequest, request_id).visitor.visit_count == 1


def test_cancel_by_admin_and_not_by_other_member(
    client, visitor, member, other_member, company, admin_headers, headers_for
):
    request_id = submit(client, visitor, member, company).json()["data"]["request"]["id"]
    stranger = client.put(f"{API}/requests/{request_id}/cancel", headers=headers_for(other_member.id, "member"))
    assert stranger.status_code == 403

    response = client.put(f"{API}/requests/{request_id}/cancel", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["request"]["status"] == "cancelled"

    again = client.put(f"{API}/requests/{request_id}/cancel", headers=admin_headers)
    assert again.status_code == 409


def test_fetch_is_owner_or_admin_only(
    client, visitor, member, other_member, company, member_headers, admin_headers, headers_for
):
    request_id = submit(client, visitor, member, company).json()["data"]["request"]["id"]
    own = client.get(f"{API}/requests/{request_id}", headers=member_headers)
    assert own.status_code == 200
    assert own.json()["data"]["request"]["visitor"]["email"] == visitor.email

    assert client.get(f"{API}/requests/{request_id}", headers=admin_headers).status_code == 200
    other = client.get(f"{API}/requests/{request_id}", headers=headers_for(other_member.id, "member"))
    assert other.status_code == 403
    assert client.get(f"{API}/requests/missing", headers=admin_headers).status_code == 404


def test_public_views_hide_contact_details(client, visitor, member, company):
    request_id = submit(client, visitor, member, company).json()["data"]["request"]["id"]

    public = client.get(f"{API}/requests/public/{request_id}").json()["data"]["request"]
    assert "email" not in public["visitor"]
    assert "email" not in public["member"]
    assert "notes" not in public

    history = client.get(f"{API}/requests/public/visitor/{visitor.id}")
    assert history.status_code == 200
    assert [row["id"] for row in history.json()["data"]["requests"]] == [request_id]
    assert client.get(f"{API}/requests/public/visitor/unknown").status_code == 404


def test_queue_endpoint(client, make_visitor, member, company):
    for index in range(2):
        submit(client, make_visitor(phone=f"+234805000000{index}"), member, company)
    response = client.get(f"{API}/requests/queue/{company.id}")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalPending"] == 2
    assert [entry["position"] for entry in data["queue"]] == [1, 2]
    assert client.get(f"{API}/requests/queue/unknown").status_code == 404


def test_member_listing_is_paginated_and_private(
    client, make_visitor, member, other_member, company, member_headers, headers_for
):
    for index in range(3):
        submit(client, make_visitor(phone=f"+234806000000{index}"), member, company)

    response = client.get(f"{API}/requests/member/{member.id}?page=2&limit=2", headers=member_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["requests"]) == 1
    assert data["pagination"] == {"current": 2, "pages": 2, "total": 3, "limit": 2}

    filtered = client.get(f"{API}/requests/member/{member.id}?status=accepted", headers=member_headers)
    assert filtered.json()["data"]["pagination"]["total"] == 0

    foreign = client.get(f"{API}/requests/member/{member.id}", headers=headers_for(other_member.id, "member"))
    assert foreign.status_code == 403

    too_big = client.get(f"{API}/requests/member/{member.id}?limit=500", headers=member_headers)
    assert too_big.status_code == 400


def test_company_listing_needs_admin(client, visitor, member, company, member_headers, admin_headers):
    submit(client, visitor, member, company)
    assert client.get(f"{API}/requests/company/{company.id}", headers=member_headers).status_code == 403
    response = client.get(f"{API}/requests/company/{company.id}", headers=admin_headers)
    assert response.json()["data"]["pagination"]["total"] == 1


def test_response_carries_request_id_header(client):
    response = client.get(f"{API}/health")
    assert response.status_code == 200
    assert response.headers["X-Request-ID"]
    assert response.json()["database"] is True


def test_public_listing_is_paginated_and_limited(client, make_visitor, member, company):
    for index in range(3):
        submit(client, make_visitor(phone=f"+234807000000{index}"), member, company)

    response = client.get(f"{API}/requests/public?page=1&limit=2")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["pagination"] == {"current": 1, "pages": 2, "total": 3, "limit": 2}
    assert len(data["requests"]) == 2
    for row in data["requests"]:
        assert "email" not in row["visitor"]
        assert "email" not in row["member"]
        assert "notes" not in row
        assert "tags" not in row
        assert "notifications" not in row

    default = client.get(f"{API}/requests/public").json()["data"]
    assert default["pagination"]["limit"] == 20
    assert len(default["requests"]) == 3

    assert client.get(f"{API}/requests/public?limit=101").status_code == 400


def test_unknown_route_and_method_keep_envelope(client):
    missing = client.get(f"{API}/nope")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Not Found"}

    wrong_method = client.delete(f"{API}/health")
    assert wrong_method.status_code == 405
    assert wrong_method.json()["success"] is False
