from coachspace.services.events import BookingCancelled, BookingStatusChanged


def test_health(api_client):
    assert api_client.get("/api/v1/health").json() == {"status": "ok"}


def test_booking_requires_token(api_client, make_class):
    fitness_class = make_class()

    response = api_client.post("/api/v1/bookings", json={"class_id": fitness_class.id})

    assert response.status_code == 401


def test_booking_rejects_bad_token(api_client, make_class):
    fitness_class = make_class()

    response = api_client.post(
        "/api/v1/bookings",
        json={"class_id": fitness_class.id},
        headers={"Authorization": "Bearer not-a-token"},
    )

    assert response.status_code == 401


def test_create_booking_confirmed_then_waitlisted(api_client, make_class, auth_headers):
    fitness_class = make_class(capacity=1)

    first = api_client.post(
        "/api/v1/bookings", json={"class_id": fitness_class.id}, headers=auth_headers("u1")
    )
    second = api_client.post(
        "/api/v1/bookings", json={"class_id": fitness_class.id}, headers=auth_headers("u2")
    )

    assert first.status_code == 201
    assert first.json()["status"] == "confirmed"
    assert first.json()["waitlist_position"] is None
    assert second.status_code == 201
    assert second.json()["status"] == "waitlisted"
    assert second.json()["waitlist_position"] == 1


def test_booking_errors_map_to_status_codes(api_client, make_class, auth_headers):
    fitness_class = make_class()
    headers = auth_headers("u1")

    missing = api_client.post("/api/v1/bookings", json={"class_id": "missing"}, headers=headers)
    api_client.post("/api/v1/bookings", json={"class_id": fitness_class.id}, headers=headers)
    duplicate = api_client.post(
        "/api/v1/bookings", json={"class_id": fitness_class.id}, headers=headers
    )

    assert missing.status_code == 404
    assert missing.json()["detail"] == "Class not found"
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Already booked"


def test_cancel_promotes_waitlisted_student(api_client, make_class, auth_headers, sink):
    fitness_class = make_class(capacity=1)
    seat = api_client.post(
        "/api/v1/bookings", json={"class_id": fitness_class.id}, headers=auth_headers("u1")
    ).json()
    waiting = api_client.post(
        "/api/v1/bookings", json={"class_id": fitness_class.id}, headers=auth_headers("u2")
    ).json()

    response = api_client.post(
        f"/api/v1/bookings/{seat['id']}/cancel",
        json={"reason": "Injured"},
        headers=auth_headers("u1"),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancellation_reason"] == "Injured"
    promoted = api_client.get(f"/api/v1/bookings/{waiting['id']}", headers=auth_headers("u2"))
    assert promoted.json()["status"] == "confirmed"
    assert len(sink.of_kind(BookingCancelled)) == 1
    assert len(sink.of_kind(BookingStatusChanged)) == 1


def test_cancel_without_body_and_twice(api_client, make_class, auth_headers):
    fitness_class = make_class()
    booking = api_client.post(
        "/api/v1/bookings", json={"class_id": fitness_class.id}, headers=auth_headers("u1")
    ).json()

    first = api_client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=auth_headers("u1"))
    second = api_client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=auth_headers("u1"))

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["status"] == "cancelled"


def test_other_students_cannot_see_or_cancel(api_client, make_class, auth_headers):
    fitness_class = make_class()
    booking = api_client.post(
        "/api/v1/bookings", json={"class_id": fitness_class.id}, headers=auth_headers("u1")
    ).json()

    view = api_client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers("u2"))
    cancel = api_client.post(
        f"/api/v1/bookings/{booking['id']}/cancel", headers=auth_headers("u2")
    )
    missing = api_client.get("/api/v1/bookings/missing", headers=auth_headers("u2"))

    assert view.status_code == 403
    assert cancel.status_code == 403
    assert missing.status_code == 404


def test_instructor_can_cancel_booking_in_own_class(api_client, make_class, auth_headers):
    fitness_class = make_class(instructor_id="coach")
    booking = api_client.post(
        "/api/v1/bookings", json={"class_id": fitness_class.id}, headers=auth_headers("u1")
    ).json()

    response = api_client.post(
        f"/api/v1/bookings/{booking['id']}/cancel",
        json={"reason": "Class moved"},
        headers=auth_headers("coach", role="instructor"),
    )

    assert response.status_code == 200
    assert response.json()["cancelled_by"] == "coach"


def test_list_bookings_scoped_to_caller(api_client, make_class, auth_headers):
    fitness_class = make_class(capacity=1, instructor_id="coach")
    for user_id in ("u1", "u2"):
        api_client.post(
            "/api/v1/bookings", json={"class_id": fitness_class.id}, headers=auth_headers(user_id)
        )

    own = api_client.get("/api/v1/bookings", headers=auth_headers("u2"))
    other = api_client.get("/api/v1/bookings?user_id=u1", headers=auth_headers("u2"))
    roster = api_client.get(
        f"/api/v1/bookings?class_id={fitness_class.id}",
        headers=auth_headers("coach", role="instructor"),
    )
    waitlisted = api_client.get(
        f"/api/v1/bookings?class_id={fitness_class.id}&status=waitlisted",
        headers=auth_headers("coach", role="instructor"),
    )
    foreign = api_client.get(
        f"/api/v1/bookings?class_id={fitness_class.id}",
        headers=auth_headers("other-coach", role="instructor"),
    )

    assert [b["user_id"] for b in own.json()] == ["u2"]
    assert own.json()[0]["waitlist_position"] == 1
    assert other.status_code == 403
    assert [b["user_id"] for b in roster.json()] == ["u1", "u2"]
    assert [b["user_id"] for b in waitlisted.json()] == ["u2"]
    assert foreign.status_code == 403


def test_busy_class_maps_to_gateway_timeout(api_client, make_class, auth_headers, manager):
    fitness_class = make_class()
    manager.lock_timeout = 0.01

    with manager.locks.hold(fitness_class.id):
        response = api_client.post(
            "/api/v1/bookings", json={"class_id": fitness_class.id}, headers=auth_headers("u1")
        )

    assert response.status_code == 504
