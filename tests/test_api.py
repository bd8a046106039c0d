"""
Tests for the API functionality.
"""

import json

import pytest
from conftest import FailingWatchlistStorage, make_dashboard
from fastapi.testclient import TestClient

from crypto_watchlist.api.service import create_app


@pytest.fixture
def api_client(fake_client):
    """Test client whose dashboard talks to the fake market data client."""
    app = create_app(lambda: make_dashboard(fake_client))
    with TestClient(app) as client:
        yield client


class TestAPI:
    """Test cases for the API endpoints."""

    def test_health_check(self, api_client):
        response = api_client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_404_endpoint(self, api_client):
        response = api_client.get("/nonexistent")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_markets_popular(self, api_client):
        response = api_client.get("/markets")
        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Popular Cryptocurrencies"
        assert [card["coin"]["id"] for card in data["coins"]] == [
            "bitcoin",
            "ethereum",
            "cardano",
        ]
        assert data["coins"][0]["price"] == "$45.00K"

    def test_markets_sorted_by_change(self, api_client):
        response = api_client.get("/markets?sort=change_24h")
        assert response.status_code == 200
        data = response.json()
        assert data["coins"][0]["coin"]["id"] == "cardano"
        assert data["next_sort"] == "market_cap"

    def test_markets_invalid_sort(self, api_client):
        response = api_client.get("/markets?sort=volume")
        assert response.status_code == 422

    def test_markets_upstream_down(self, api_client, fake_client):
        fake_client.fail = True
        response = api_client.get("/markets")
        assert response.status_code == 502
        assert response.json()["error"] == "upstream_unavailable"

    def test_search(self, api_client):
        response = api_client.get("/search?q=bit")
        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "bit"
        assert [hit["result"]["id"] for hit in data["results"]] == ["bitcoin"]

    def test_search_empty(self, api_client, fake_client):
        response = api_client.get("/search")
        assert response.status_code == 200
        assert response.json()["results"] == []
        assert fake_client.count("search") == 0

    def test_coin_details(self, api_client):
        response = api_client.get("/coins/bitcoin?timeframe=30d")
        assert response.status_code == 200
        data = response.json()
        assert data["timeframe"] == "30D"
        assert data["stats"]["market_cap"] == "$900.00B"
        assert data["description_html"] == "<p>Digital gold</p>"
        assert data["price_chart"]["unit"] == "day"

    def test_coin_not_found(self, api_client):
        response = api_client.get("/coins/dogecoin")
        assert response.status_code == 404
        assert response.json()["error"] == "coin_not_found"

    def test_coin_invalid_id(self, api_client):
        response = api_client.get("/coins/-bitcoin")
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "invalid_coin_id"

    def test_coin_invalid_timeframe(self, api_client):
        response = api_client.get("/coins/bitcoin?timeframe=2W")
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "invalid_timeframe"


class TestWatchlistAPI:
    """Test cases for the watchlist endpoints."""

    def test_add_toggle_remove(self, api_client):
        response = api_client.post("/watchlist/bitcoin")
        assert response.json() == {"ids": ["bitcoin"], "count": 1}

        response = api_client.post("/watchlist/ethereum/toggle")
        assert response.json()["in_watchlist"] is True
        assert response.json()["ids"] == ["bitcoin", "ethereum"]

        response = api_client.post("/watchlist/bitcoin/toggle")
        assert response.json()["in_watchlist"] is False

        response = api_client.delete("/watchlist/ethereum")
        assert response.json() == {"ids": [], "count": 0}

    def test_markets_follow_watchlist(self, api_client):
        api_client.post("/watchlist/ethereum")

        data = api_client.get("/markets").json()

        assert data["title"] == "Your Watchlist"
        assert [card["coin"]["id"] for card in data["coins"]] == ["ethereum"]
        assert data["coins"][0]["in_watchlist"] is True

    def test_replace_dedupes(self, api_client):
        response = api_client.put("/watchlist", json=["bitcoin", "bitcoin", "cardano"])
        assert response.json() == {"ids": ["bitcoin", "cardano"], "count": 2}

    def test_manager(self, api_client):
        api_client.put("/watchlist", json=["cardano"])

        data = api_client.get("/watchlist").json()

        assert data["ids"] == ["cardano"]
        assert data["coins"][0]["coin"]["id"] == "cardano"

    def test_clear_requires_confirmation(self, api_client):
        api_client.post("/watchlist/bitcoin")

        response = api_client.delete("/watchlist")
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "confirmation_required"

        response = api_client.delete("/watchlist?confirm=true")
        assert response.json() == {"ids": [], "count": 0}

    def test_remove_many(self, api_client):
        api_client.put("/watchlist", json=["bitcoin", "ethereum", "cardano"])

        response = api_client.post(
            "/watchlist/remove", json={"ids": ["bitcoin", "cardano"]}
        )

        assert response.json() == {"ids": ["ethereum"], "count": 1}

    def test_export(self, api_client):
        api_client.put("/watchlist", json=["bitcoin", "ethereum"])

        response = api_client.get("/watchlist/export")

        assert response.status_code == 200
        assert "crypto-watchlist-" in response.headers["content-disposition"]
        assert json.loads(response.text) == ["bitcoin", "ethereum"]

    def test_import(self, api_client):
        api_client.post("/watchlist/bitcoin")

        response = api_client.post(
            "/watchlist/import", content=b'["ethereum", "bitcoin"]'
        )

        assert response.json() == {"ids": ["bitcoin", "ethereum"], "count": 2}

    @pytest.mark.parametrize(
        "content",
        [b"not json", b'{"ids": ["bitcoin"]}', b'["bitcoin", 1]'],
    )
    def test_import_rejected(self, api_client, content):
        api_client.post("/watchlist/cardano")

        response = api_client.post("/watchlist/import", content=content)

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "invalid_import"
        assert api_client.get("/watchlist").json()["ids"] == ["cardano"]

    def test_share_link_seeds_watchlist(self, api_client):
        api_client.put("/watchlist", json=["bitcoin", "cardano"])
        share = api_client.get("/watchlist/share").json()
        assert share["url"].startswith("https://watch.example/?watchlist=")

        api_client.delete("/watchlist?confirm=true")
        path = share["url"].removeprefix("https://watch.example")
        response = api_client.get(path, follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "http://testserver/"
        assert api_client.get("/watchlist").json()["ids"] == ["bitcoin", "cardano"]


class TestWatchlistStorageFailure:
    """Test cases for watchlist changes that cannot be saved."""

    @pytest.fixture
    def storage(self):
        return FailingWatchlistStorage()

    @pytest.fixture
    def failing_client(self, fake_client, storage):
        app = create_app(lambda: make_dashboard(fake_client, storage=storage))
        with TestClient(app) as client:
            yield client

    def test_failed_save_returns_503(self, failing_client, storage):
        failing_client.post("/watchlist/bitcoin")
        storage.failing = True

        response = failing_client.post("/watchlist/ethereum")

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "storage_unavailable"
        assert failing_client.get("/watchlist").json()["ids"] == ["bitcoin"]

    def test_failed_toggle_returns_503(self, failing_client, storage):
        storage.failing = True

        response = failing_client.post("/watchlist/bitcoin/toggle")

        assert response.status_code == 503
        assert failing_client.get("/watchlist").json()["ids"] == []

    def test_markets_keep_previous_source(self, failing_client, storage):
        storage.failing = True
        failing_client.put("/watchlist", json=["ethereum"])

        data = failing_client.get("/markets").json()

        assert data["title"] == "Popular Cryptocurrencies"

    def test_recovers_after_storage_returns(self, failing_client, storage):
        storage.failing = True
        failing_client.post("/watchlist/bitcoin")
        storage.failing = False

        response = failing_client.post("/watchlist/bitcoin")

        assert response.status_code == 200
        assert response.json() == {"ids": ["bitcoin"], "count": 1}
