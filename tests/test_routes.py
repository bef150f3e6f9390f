"""Tests for the profile tree HTTP API."""


def create_profile(api_client) -> str:
    response = api_client.post("/api/profiles", json={
        "insertions": [
            {"label": "profile.name", "parentLabel": "root", "data": "Alice"},
            {
                "label": "profile.contact",
                "parentLabel": "root",
                "children": [{"label": "contact.email", "data": "alice@example.com"}],
            },
        ]
    })
    assert response.status_code == 201
    return response.json()["address"]


class TestProfileRoutes:
    """Tests for the /api/profiles endpoints."""

    def test_health(self, api_client):
        """Health check responds."""
        response = api_client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_create_and_search(self, api_client):
        """A created profile can be searched with leaf data attached."""
        address = create_profile(api_client)

        response = api_client.get(
            f"/api/profiles/{address}/nodes/profile.contact", params={"fetch_data": "true"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["failures"] == []
        assert body["node"]["children"][0]["data"] == "alice@example.com"
        assert "contentAddress" in body["node"]["children"][0]

    def test_search_without_fetch(self, api_client):
        """By default leaves come back with addresses only."""
        address = create_profile(api_client)
        response = api_client.get(f"/api/profiles/{address}/nodes/profile.name")
        assert response.status_code == 200
        assert "data" not in response.json()["node"]

    def test_search_missing_label(self, api_client):
        """Unknown labels return 404."""
        address = create_profile(api_client)
        response = api_client.get(f"/api/profiles/{address}/nodes/missing")
        assert response.status_code == 404

    def test_unknown_address(self, api_client):
        """Unknown tree addresses return 404."""
        response = api_client.get("/api/profiles/missing/nodes/root")
        assert response.status_code == 404

    def test_insert_reports_failures(self, api_client):
        """Skipped insertions are listed next to the new address."""
        address = create_profile(api_client)
        response = api_client.post(f"/api/profiles/{address}/nodes", json={
            "insertions": [
                {"label": "contact.phone", "parentLabel": "profile.contact", "data": "555"},
                {"label": "stray", "parentLabel": "nope", "data": "x"},
            ]
        })
        assert response.status_code == 200
        body = response.json()
        assert body["address"] != address
        assert [f["label"] for f in body["failures"]] == ["stray"]

    def test_update_leaf(self, api_client):
        """Updating a leaf returns a tree serving the new value."""
        address = create_profile(api_client)
        response = api_client.put(
            f"/api/profiles/{address}/nodes/profile.name", json={"data": "Bob"}
        )
        assert response.status_code == 200
        new_address = response.json()["address"]

        response = api_client.get(
            f"/api/profiles/{new_address}/nodes/profile.name", params={"fetch_data": "true"}
        )
        assert response.json()["node"]["data"] == "Bob"

    def test_update_internal_node(self, api_client):
        """Updating an internal node is a conflict."""
        address = create_profile(api_client)
        response = api_client.put(
            f"/api/profiles/{address}/nodes/profile.contact", json={"data": "x"}
        )
        assert response.status_code == 409

    def test_remove(self, api_client):
        """Removed nodes disappear from the new tree."""
        address = create_profile(api_client)
        response = api_client.delete(f"/api/profiles/{address}/nodes/profile.name")
        assert response.status_code == 200
        new_address = response.json()["address"]

        response = api_client.get(f"/api/profiles/{new_address}/nodes/profile.name")
        assert response.status_code == 404

    def test_remove_root(self, api_client):
        """Removing the root is a conflict."""
        address = create_profile(api_client)
        response = api_client.delete(f"/api/profiles/{address}/nodes/root")
        assert response.status_code == 409

    def test_malformed_tree(self, api_client, memory_store):
        """Addresses holding non-tree data return 422."""
        memory_store.objects["garbage"] = b"not a tree"
        response = api_client.get("/api/profiles/garbage/nodes/root")
        assert response.status_code == 422
