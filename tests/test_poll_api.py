from datetime import timedelta

from backend.models.models import AuditLog, Poll, PollVote


def test_board_member_creates_poll_and_residents_vote(api_client, create_resident, db_session, now):
    board = create_resident("board@example.com", is_board_member=True)
    voter = create_resident("voter@example.com")

    board_client = api_client(board)
    response = board_client.post(
        "/polls/",
        json={
            "title": "Pool hours",
            "options": ["Morning", "Evening"],
            "category": "amenities",
            "expires_at": (now + timedelta(days=3)).isoformat(),
        },
    )
    assert response.status_code == 201, response.text
    poll = response.json()
    assert poll["created_by"] == str(board.id)
    assert poll["option_votes"] == [0, 0]
    assert poll["winning_option"] is None

    voter_client = api_client(voter)
    cast = voter_client.post(f"/polls/{poll['id']}/vote", json={"selected_options": [1]})
    assert cast.status_code == 200, cast.text
    assert cast.json()["user_id"] == str(voter.id)

    detail = voter_client.get(f"/polls/{poll['id']}").json()
    assert detail["option_votes"] == [0, 1]
    assert detail["total_votes"] == 1
    assert detail["winning_option"]["option"] == "Evening"
    assert detail["winning_option"]["percentage"] == 100.0

    assert voter_client.get("/polls/my-votes").json() == {str(poll["id"]): [1]}
    assert voter_client.get(f"/polls/{poll['id']}/my-vote").json()["selected_options"] == [1]

    actions = {row.action for row in db_session.query(AuditLog).all()}
    assert "poll.create" in actions


def test_resident_cannot_manage_polls(api_client, create_resident, create_poll):
    poll = create_poll()
    client = api_client(create_resident())

    assert client.post("/polls/", json={"title": "Nope", "options": ["A", "B"]}).status_code == 403
    assert client.patch(f"/polls/{poll.id}", json={"title": "Nope"}).status_code == 403
    assert client.delete(f"/polls/{poll.id}").status_code == 403
    assert client.get(f"/polls/{poll.id}/votes").status_code == 403


def test_create_poll_with_one_option_is_rejected(api_client, create_resident, db_session):
    client = api_client(create_resident(is_board_member=True))
    response = client.post("/polls/", json={"title": "Lonely", "options": ["Only"]})
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"
    assert db_session.query(Poll).count() == 0


def test_vote_errors_map_to_http_statuses(api_client, create_resident, create_poll, now):
    client = api_client(create_resident())
    open_poll = create_poll(["A", "B"])
    expired = create_poll(expires_at=now - timedelta(seconds=1))

    missing = client.post("/polls/9999/vote", json={"selected_options": [0]})
    assert missing.status_code == 404

    late = client.post(f"/polls/{expired.id}/vote", json={"selected_options": [0]})
    assert late.status_code == 400
    assert late.json()["error"] == "ExpiredError"

    bad_index = client.post(f"/polls/{open_poll.id}/vote", json={"selected_options": [5]})
    assert bad_index.status_code == 400
    assert bad_index.json()["error"] == "InvalidOptionError"

    multi = client.post(f"/polls/{open_poll.id}/vote", json={"selected_options": [0, 1]})
    assert multi.status_code == 400
    assert multi.json()["error"] == "MultiVoteNotAllowedError"


def test_revote_over_http_replaces_selection(api_client, create_resident, create_poll, db_session):
    voter = create_resident()
    poll = create_poll()
    client = api_client(voter)

    client.post(f"/polls/{poll.id}/vote", json={"selected_options": [0]})
    client.post(f"/polls/{poll.id}/vote", json={"selected_options": [2]})

    ballots = db_session.query(PollVote).filter(PollVote.poll_id == poll.id).all()
    assert len(ballots) == 1
    assert ballots[0].selected_options == [2]
    assert client.get(f"/polls/{poll.id}").json()["option_votes"] == [0, 0, 1]


def test_list_endpoints_share_tallies(api_client, create_resident, create_poll, db_session, now):
    voter = create_resident()
    older = create_poll(["A", "B"], title="Older", created_at=now - timedelta(days=1))
    newer = create_poll(["A", "B"], title="Newer", category="events")
    client = api_client(voter)
    client.post(f"/polls/{older.id}/vote", json={"selected_options": [0]})
    client.post(f"/polls/{newer.id}/vote", json={"selected_options": [1]})

    listed = client.get("/polls/").json()
    page = client.get("/polls/page", params={"limit": 1, "offset": 0}).json()
    active = client.get("/polls/active").json()
    by_category = client.get("/polls/", params={"category": "events"}).json()

    assert [poll["title"] for poll in listed] == ["Newer", "Older"]
    assert page["total"] == 2
    assert [poll["title"] for poll in page["items"]] == ["Newer"]
    assert page["items"][0]["option_votes"] == listed[0]["option_votes"] == [0, 1]
    assert {poll["id"] for poll in active} == {older.id, newer.id}
    assert [poll["title"] for poll in by_category] == ["Newer"]


def test_page_rejects_bad_limits(api_client, create_resident):
    client = api_client(create_resident())
    assert client.get("/polls/page", params={"limit": 0}).status_code == 422
    assert client.get("/polls/page", params={"offset": -1}).status_code == 422


def test_board_updates_toggles_and_deletes_poll(api_client, create_resident, create_poll, db_session):
    board = create_resident(is_board_member=True)
    voter = create_resident()
    poll = create_poll(["A", "B"])
    api_client(voter).post(f"/polls/{poll.id}/vote", json={"selected_options": [0]})
    client = api_client(board)

    patched = client.patch(f"/polls/{poll.id}", json={"title": "Renamed"})
    assert patched.status_code == 200
    assert patched.json()["title"] == "Renamed"
    assert patched.json()["options"] == ["A", "B"]

    toggled = client.post(f"/polls/{poll.id}/toggle")
    assert toggled.json()["is_active"] is False
    assert client.get("/polls/active").json() == []

    votes = client.get(f"/polls/{poll.id}/votes").json()
    assert [vote["user_id"] for vote in votes] == [str(voter.id)]

    assert client.delete(f"/polls/{poll.id}").status_code == 204
    assert client.get(f"/polls/{poll.id}").status_code == 404
    assert db_session.query(PollVote).count() == 0


def test_developer_role_can_manage_polls(api_client, create_resident):
    client = api_client(create_resident(is_dev=True, is_resident=False))
    response = client.post("/polls/", json={"title": "Dev poll", "options": ["Yes", "No"]})
    assert response.status_code == 201


def test_patch_with_null_title_is_a_client_error(api_client, create_resident, create_poll, db_session):
    board = create_resident(is_board_member=True)
    poll = create_poll(title="Keep me")
    client = api_client(board)

    response = client.patch(f"/polls/{poll.id}", json={"title": None})

    assert response.status_code == 400
    assert "title" in response.json()["detail"]
    db_session.expire_all()
    assert db_session.get(Poll, poll.id).title == "Keep me"
