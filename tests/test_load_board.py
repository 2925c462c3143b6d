"""Tests for load board postings and carrier bids."""

from __future__ import annotations

from tms_api import events


def post_load(client, headers, load_id: int, **kw) -> dict:
    r = client.post("/v1/load-board/postings", json={"load_id": load_id, "posted_rate": "$2,000", **kw},
                    headers=headers)
    assert r.status_code == 201
    return r.json()


def bid(client, headers, posting_id: int, carrier_id: int, amount) -> dict:
    return client.post("/v1/load-board/bids",
                       json={"posting_id": posting_id, "carrier_id": carrier_id, "bid_amount": amount},
                       headers=headers)


class TestPostings:
    def test_posting_copies_lane_from_stops(self, client, headers, make_load) -> None:
        posting = post_load(client, headers, make_load())
        assert posting["status"] == "ACTIVE"
        assert (posting["origin_city"], posting["origin_state"]) == ("Chicago", "IL")
        assert (posting["dest_city"], posting["dest_state"]) == ("Dallas", "TX")
        assert posting["posted_rate"] == 2000
        assert posting["bid_count"] == 0
        assert posting["expires_at"] > posting["posted_at"]

    def test_search_by_lane(self, client, headers, make_load) -> None:
        post_load(client, headers, make_load())
        body = client.get("/v1/load-board/postings", params={"origin_state": "IL", "dest_city": "dal"},
                          headers=headers).json()
        assert body["meta"]["total"] == 1
        body = client.get("/v1/load-board/postings", params={"origin_state": "CA"}, headers=headers).json()
        assert body["meta"]["total"] == 0

    def test_refresh_only_active(self, client, headers, make_load) -> None:
        posting = post_load(client, headers, make_load())
        pid = posting["id"]
        assert client.post(f"/v1/load-board/postings/{pid}/refresh", headers=headers).status_code == 200
        client.post(f"/v1/load-board/postings/{pid}/expire", headers=headers)
        r = client.post(f"/v1/load-board/postings/{pid}/refresh", headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Can only refresh active postings"

    def test_expire_old(self, client, headers, make_load) -> None:
        post_load(client, headers, make_load(), expires_at="2000-01-01T00:00:00Z")
        post_load(client, headers, make_load())
        assert client.post("/v1/load-board/postings/expire-old", headers=headers).json() == {"expiredCount": 1}

    def test_views_count_unique_carriers(self, client, headers, make_load, make_carrier) -> None:
        pid = post_load(client, headers, make_load())["id"]
        a, b = make_carrier(), make_carrier()
        for carrier in (a, a, b):
            client.post(f"/v1/load-board/postings/{pid}/view", json={"carrier_id": carrier, "source": "web"},
                        headers=headers)
        metrics = client.get(f"/v1/load-board/postings/{pid}/metrics", headers=headers).json()
        assert metrics["viewCount"] == 3
        assert metrics["uniqueViewers"] == 2


class TestBids:
    def test_one_open_bid_per_carrier(self, client, headers, make_load, make_carrier) -> None:
        pid = post_load(client, headers, make_load())["id"]
        cid = make_carrier()
        assert bid(client, headers, pid, cid, 1800).status_code == 201
        r = bid(client, headers, pid, cid, 1700)
        assert r.status_code == 400
        assert r.json()["detail"] == "Carrier already has an active bid on this posting"

    def test_accept_books_posting_and_tenders_load(self, client, headers, make_load, make_carrier) -> None:
        lid = make_load()
        pid = post_load(client, headers, lid)["id"]
        winner, loser = make_carrier(), make_carrier()
        win = bid(client, headers, pid, winner, "1,750").json()
        lose = bid(client, headers, pid, loser, 1900).json()
        seen = []
        events.on("bid.accepted")(seen.append)

        r = client.post(f"/v1/load-board/bids/{win['id']}/accept", headers=headers)
        assert r.status_code == 200
        assert r.json()["status"] == "ACCEPTED"
        assert seen[0]["amount"] == 1750

        other = client.get(f"/v1/load-board/bids/{lose['id']}", headers=headers).json()
        assert other["status"] == "REJECTED"
        assert other["rejection_reason"] == "Another bid was accepted"
        assert other["posting"]["status"] == "BOOKED"

        load = client.get(f"/v1/loads/{lid}", headers=headers).json()
        assert load["status"] == "TENDERED"
        assert load["carrier_id"] == winner
        assert load["carrier_rate"] == 1750

    def test_counter_then_reject(self, client, headers, make_load, make_carrier) -> None:
        pid = post_load(client, headers, make_load())["id"]
        b = bid(client, headers, pid, make_carrier(), 2500).json()
        r = client.post(f"/v1/load-board/bids/{b['id']}/counter", json={"counter_amount": 2100}, headers=headers)
        assert r.json()["status"] == "COUNTERED"
        assert r.json()["counter_amount"] == 2100

        r = client.post(f"/v1/load-board/bids/{b['id']}/counter", json={"counter_amount": 2000}, headers=headers)
        assert r.status_code == 400

        r = client.post(f"/v1/load-board/bids/{b['id']}/reject", json={"rejection_reason": "Too high"},
                        headers=headers)
        assert r.json()["status"] == "REJECTED"

    def test_cannot_withdraw_accepted(self, client, headers, make_load, make_carrier) -> None:
        pid = post_load(client, headers, make_load())["id"]
        b = bid(client, headers, pid, make_carrier(), 1800).json()
        client.post(f"/v1/load-board/bids/{b['id']}/accept", headers=headers)
        r = client.post(f"/v1/load-board/bids/{b['id']}/withdraw", headers=headers)
        assert r.status_code == 400

    def test_no_bids_on_inactive_posting(self, client, headers, make_load, make_carrier) -> None:
        pid = post_load(client, headers, make_load())["id"]
        client.post(f"/v1/load-board/postings/{pid}/expire", headers=headers)
        r = bid(client, headers, pid, make_carrier(), 1800)
        assert r.status_code == 400
        assert r.json()["detail"] == "Cannot bid on inactive posting"

    def test_posting_bids_sorted_by_status_then_amount(self, client, headers, make_load, make_carrier) -> None:
        pid = post_load(client, headers, make_load())["id"]
        high = bid(client, headers, pid, make_carrier(), 2200).json()
        low = bid(client, headers, pid, make_carrier(), 1600).json()
        gone = bid(client, headers, pid, make_carrier(), 1000).json()
        client.post(f"/v1/load-board/bids/{gone['id']}/withdraw", headers=headers)
        ids = [b["id"] for b in client.get(f"/v1/load-board/postings/{pid}/bids", headers=headers).json()]
        assert ids == [low["id"], high["id"], gone["id"]]
