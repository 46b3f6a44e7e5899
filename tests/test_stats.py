import datetime

from golfclub.models import Score
from golfclub.services.stats import compute_stats, day_window, parse_day


def test_empty_stats_are_zero():
    stats = compute_stats([])
    assert stats.average_score == 0
    assert stats.lowest_score == 0
    assert stats.highest_score == 0
    assert stats.total_rounds == 0


def test_compute_stats():
    scores = [Score(user_id="u", hole_scores=[], total_score=t) for t in (72, 80, 85)]
    stats = compute_stats(scores)
    assert stats.average_score == 79.0
    assert stats.lowest_score == 72
    assert stats.highest_score == 85
    assert stats.total_rounds == 3


def test_day_window():
    start, end = day_window(datetime.date(2024, 2, 29))
    assert start == datetime.datetime(2024, 2, 29)
    assert end == datetime.datetime(2024, 3, 1)


def test_parse_day():
    assert parse_day("2024-05-01") == datetime.date(2024, 5, 1)
    assert parse_day(None) is None
    assert parse_day("") is None


def test_club_stats_api(client, signup, new_club):
    _, ha = signup("a@example.com", "A")
    _, hb = signup("b@example.com", "B")
    _, hx = signup("x@example.com", "Outsider")
    cid = new_club(ha)
    client.post(f"/clubs/{cid}/join", headers=hb)

    for headers, holes, date in (
        (ha, [4] * 18, "2024-05-01T00:00:00"),
        (hb, [5] * 18, "2024-05-01T23:59:59"),
        (ha, [3] * 18, "2024-05-02T00:00:00"),
        (hb, [6] * 18, "2024-04-30T12:00:00"),
    ):
        resp = client.post(
            "/scores",
            json={"hole_scores": holes, "club_id": cid, "date": date},
            headers=headers,
        )
        assert resp.status_code == 201
    # rounds outside the club are ignored
    client.post("/scores", json={"hole_scores": [1] * 18, "date": "2024-05-01T10:00:00"}, headers=ha)

    resp = client.get(f"/clubs/{cid}/stats", headers=ha)
    assert resp.status_code == 200
    assert resp.json() == {
        "average_score": 81.0,
        "lowest_score": 54,
        "highest_score": 108,
        "total_rounds": 4,
    }

    resp = client.get(f"/clubs/{cid}/stats", params={"date": "2024-05-01"}, headers=ha)
    assert resp.json() == {
        "average_score": 81.0,
        "lowest_score": 72,
        "highest_score": 90,
        "total_rounds": 2,
    }

    # any authenticated caller may read stats
    resp = client.get(f"/clubs/{cid}/stats", params={"date": "2023-01-01"}, headers=hx)
    assert resp.status_code == 200
    assert resp.json()["total_rounds"] == 0
    assert resp.json()["average_score"] == 0

    resp = client.get(f"/clubs/{cid}/stats", params={"date": "05/01/2024"}, headers=ha)
    assert resp.status_code == 400
