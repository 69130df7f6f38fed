"""
Tests for the HTTP semantics of every route, independent of transport.
"""

import json

import pytest

from modemhub.config import Settings
from modemhub.service import (
    ApiRequest,
    ApiService,
    parse_json_body,
    route_from_path,
)
from modemhub.errors import MalformedRequestError


@pytest.fixture
def service():
    return ApiService()


def make_request(method, url="/api/users", body=None, headers=None, client_ip="10.0.0.1"):
    if isinstance(body, (dict, list)):
        body = json.dumps(body).encode("utf-8")
    elif isinstance(body, str):
        body = body.encode("utf-8")
    return ApiRequest.from_parts(method, url, headers or {}, body or b"", client_ip)


class TestRequestParsing:
    """Tests for ApiRequest and body helpers."""

    def test_query_and_path(self):
        request = make_request("get", "/api/user?username=john_doe&all=false")
        assert request.method == "GET"
        assert request.path == "/api/user"
        assert request.query == {"username": "john_doe", "all": "false"}

    def test_forwarded_for_wins(self):
        request = make_request("POST", headers={"X-Forwarded-For": "1.2.3.4, 10.0.0.2"})
        assert request.client_ip == "1.2.3.4"

    def test_header_lookup_is_case_insensitive(self):
        request = make_request("GET", headers={"Content-Type": "text/plain"})
        assert request.header("content-type") == "text/plain"

    @pytest.mark.parametrize("body", [b"", b"   ", b"{not json", b"[1, 2]", b"\xff\xfe"])
    def test_malformed_bodies(self, body):
        with pytest.raises(MalformedRequestError):
            parse_json_body(body)

    @pytest.mark.parametrize(
        "path,route",
        [("/", "index"), ("/api/users", "users"), ("/api/post-viewer", "post-viewer"), ("/users/", "users")],
    )
    def test_route_from_path(self, path, route):
        assert route_from_path(path) == route


class TestUsersGet:
    """Tests for GET /api/users."""

    def test_list_users(self, service):
        response = service.dispatch("users", make_request("GET"))

        assert response.status == 200
        assert response.body["success"] is True
        assert response.body["count"] == 4
        assert response.body["message"] == "Found 4 users"
        assert response.body["data"][0] == {
            "id": 1,
            "name": "John Doe",
            "status": "active",
            "deviceModel": "iPhone 15 Pro",
        }
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_username_lookup(self, service):
        response = service.dispatch("user", make_request("GET", "/api/user?username=jane_smith"))
        assert response.status == 200
        assert response.body["data"]["id"] == 2
        assert response.body["message"] == "User found successfully"

    def test_username_not_found(self, service):
        response = service.dispatch("user", make_request("GET", "/api/user?username=ghost"))
        assert response.status == 404
        assert response.body["success"] is False
        assert response.body["error"] == "User not found"

    def test_all_flag_overrides_username(self, service):
        response = service.dispatch("user", make_request("GET", "/api/user?username=ghost&all=true"))
        assert response.status == 200
        assert response.body["count"] == 4


class TestUsersPost:
    """Tests for POST /api/users."""

    def test_add(self, service):
        print("\n➕ Testing add via POST...")
        response = service.dispatch(
            "users",
            make_request("POST", body={"action": "add", "user": {"name": "Ann", "deviceModel": "Pixel"}}),
        )

        assert response.status == 200
        body = response.body
        assert body["success"] is True
        assert body["message"] == "User 'Ann' added successfully"
        assert body["data"] == {"id": 5, "name": "Ann", "status": "active", "deviceModel": "Pixel"}
        assert body["count"] == 5
        assert body["allUsers"][-1]["id"] == 5
        assert body["timestamp"].endswith("Z")
        assert "oldUser" not in body
        print("   ✅ User added!")

    def test_update_returns_old_user(self, service):
        response = service.dispatch(
            "users",
            make_request("POST", body={"action": "update", "user": {"id": 1, "status": "inactive"}}),
        )
        assert response.status == 200
        assert response.body["data"]["status"] == "inactive"
        assert response.body["oldUser"]["status"] == "active"

    def test_delete(self, service):
        response = service.dispatch(
            "users", make_request("POST", body={"action": "delete", "user": {"id": 4}})
        )
        assert response.status == 200
        assert response.body["data"]["name"] == "Sarah Wilson"
        assert response.body["count"] == 3

    def test_add_then_delete_round_trip(self, service):
        added = service.dispatch(
            "users",
            make_request("POST", body={"action": "add", "user": {"name": "Ann", "deviceModel": "Pixel"}}),
        )
        new_id = added.body["data"]["id"]
        service.dispatch("users", make_request("POST", body={"action": "delete", "user": {"id": new_id}}))

        listing = service.dispatch("users", make_request("GET"))
        assert listing.body["count"] == 4
        assert new_id not in [user["id"] for user in listing.body["data"]]

    @pytest.mark.parametrize(
        "payload,message",
        [
            ({"action": "add", "user": {"name": "X"}}, "Missing required fields: name and deviceModel"),
            ({"action": "update", "user": {"id": 9999}}, "User with ID 9999 not found"),
            ({"action": "delete", "user": {"id": 9999}}, "User with ID 9999 not found"),
            ({"action": "bogus", "user": {}}, "Unknown action: bogus"),
        ],
    )
    def test_failures_are_500(self, service, payload, message):
        """Test that every action failure is reported as a 500 envelope."""
        response = service.dispatch("users", make_request("POST", body=payload))

        assert response.status == 500
        assert response.body["success"] is False
        assert response.body["error"] == "Internal server error"
        assert response.body["message"] == message
        assert "timestamp" in response.body
        assert len(service.registry) == 4

    @pytest.mark.parametrize("body", [None, "not json", [1, 2, 3]])
    def test_malformed_body_is_500(self, service, body):
        response = service.dispatch("users", make_request("POST", body=body))
        assert response.status == 500
        assert response.body["success"] is False

    def test_strict_status_codes(self):
        """Test that strict mode maps error kinds to 400/404."""
        service = ApiService(settings=Settings(strict_status=True))

        not_found = service.dispatch(
            "users", make_request("POST", body={"action": "delete", "user": {"id": 9999}})
        )
        invalid = service.dispatch(
            "users", make_request("POST", body={"action": "add", "user": {"name": "X"}})
        )
        unknown = service.dispatch("users", make_request("POST", body={"action": "nope"}))
        malformed = service.dispatch("users", make_request("POST", body="{"))

        assert not_found.status == 404
        assert not_found.body["error"] == "Not found"
        assert invalid.status == 400
        assert unknown.status == 400
        assert malformed.status == 400


class TestUsersOtherMethods:
    """Tests for OPTIONS and unsupported methods."""

    def test_options_preflight(self, service):
        response = service.dispatch("users", make_request("OPTIONS"))

        assert response.status == 200
        assert response.encoded() == b""
        headers = response.all_headers()
        assert "Content-Type" not in headers
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"
        assert headers["Access-Control-Allow-Headers"] == "Content-Type, Authorization, User-Agent"

    @pytest.mark.parametrize("method", ["PUT", "DELETE", "PATCH"])
    def test_method_not_allowed(self, service, method):
        response = service.dispatch("users", make_request(method))
        assert response.status == 405
        assert response.body == {
            "error": "Method not allowed",
            "method": method,
            "allowedMethods": ["GET", "POST", "OPTIONS"],
        }

    def test_configured_cors_origin(self):
        service = ApiService(settings=Settings(cors_origin="https://dashboard.example"))
        response = service.dispatch("users", make_request("OPTIONS"))
        assert response.headers["Access-Control-Allow-Origin"] == "https://dashboard.example"

    def test_unseeded_service(self):
        service = ApiService(settings=Settings(seed_defaults=False))
        response = service.dispatch("users", make_request("GET"))
        assert response.body["count"] == 0


class TestProduct:
    """Tests for POST /api/product."""

    def test_update_product(self, service):
        response = service.dispatch(
            "product",
            make_request("POST", "/api/product", {"username": "john", "productId": "p-1", "status": "pending"}),
        )
        assert response.status == 200
        data = response.body["data"]
        assert response.body["message"] == "Product status updated successfully"
        assert data["productId"] == "p-1"
        assert data["status"] == "pending"
        assert data["updatedBy"] == "john"
        assert data["processingTime"].endswith("ms")

    def test_missing_fields(self, service):
        response = service.dispatch(
            "product", make_request("POST", "/api/product", {"username": "john", "status": "active"})
        )
        assert response.status == 400
        assert response.body["error"] == "Missing required fields"

    def test_invalid_status(self, service):
        response = service.dispatch(
            "product",
            make_request("POST", "/api/product", {"username": "john", "productId": "p", "status": "gone"}),
        )
        assert response.status == 400
        assert response.body["error"] == "Invalid status"
        assert response.body["message"] == "Status must be one of: active, inactive, pending, discontinued"

    def test_invalid_json(self, service):
        response = service.dispatch("product", make_request("POST", "/api/product", "{"))
        assert response.status == 400

    def test_get_not_allowed(self, service):
        response = service.dispatch("product", make_request("GET", "/api/product"))
        assert response.status == 405


class TestViewerAndInbox:
    """Tests for the HTML request viewer, POST inbox and clear endpoint."""

    def test_request_viewer_echoes_json_body(self, service):
        response = service.dispatch(
            "handler",
            make_request("POST", "/api/handler?x=1", {"msg": "<hi>"}, headers={"Content-Type": "application/json"}),
        )
        assert response.status == 200
        assert response.content_type.startswith("text/html")
        page = response.body
        assert "<strong>Method:</strong> POST" in page
        assert "&lt;hi&gt;" in page
        assert "<hi>" not in page

    def test_request_viewer_form_body(self, service):
        response = service.dispatch(
            "handler",
            make_request(
                "POST",
                "/api/handler",
                "imei=123&signal=-71",
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            ),
        )
        assert "&quot;imei&quot;: &quot;123&quot;" in response.body

    def test_request_viewer_preflight(self, service):
        response = service.dispatch("handler", make_request("OPTIONS", "/api/handler"))
        assert response.status == 204
        assert response.encoded() == b""

    def test_capture_and_clear(self, service):
        print("\n📨 Testing POST capture...")
        first = service.dispatch("post-viewer", make_request("POST", "/api/post-viewer", {"n": 1}))
        second = service.dispatch("post-viewer", make_request("POST", "/api/post-viewer", {"n": 2}))

        assert first.status == 200
        assert first.body["message"] == "POST request received!"
        assert second.body["totalRequests"] == 2
        assert second.body["requestId"] > first.body["requestId"]

        page = service.dispatch("post-viewer", make_request("GET", "/api/post-viewer")).body
        assert "Total Requests: 2" in page
        assert "Clear All" in page

        cleared = service.dispatch("clear", make_request("POST", "/api/clear"))
        assert cleared.body == {"success": True, "message": "All requests cleared", "cleared": 2}
        assert len(service.inbox) == 0
        print("   ✅ Inbox captured and cleared!")

    @pytest.mark.parametrize(
        "raw,expected",
        [("0", 0), ("false", False), ("[]", []), ("{}", {}), ("", None)],
    )
    def test_capture_keeps_falsy_json_bodies(self, service, raw, expected):
        headers = {"Content-Type": "application/json"}
        service.dispatch("post-viewer", make_request("POST", "/api/post-viewer", raw, headers))

        entry = service.inbox.entries()[0]
        assert entry.body == expected
        assert type(entry.body) is type(expected)

    def test_clear_requires_post(self, service):
        response = service.dispatch("clear", make_request("GET", "/api/clear"))
        assert response.status == 405

    def test_post_viewer_rejects_put(self, service):
        response = service.dispatch("post-viewer", make_request("PUT", "/api/post-viewer"))
        assert response.status == 405


class TestMiscRoutes:
    """Tests for ping, index, metrics and unknown routes."""

    def test_ping(self, service):
        response = service.dispatch("test", make_request("GET", "/api/test?x=1"))
        assert response.status == 200
        assert response.body["message"] == "Hello from Vercel!"
        assert response.body["method"] == "GET"
        assert response.body["url"] == "/api/test?x=1"

    def test_index_lists_endpoints(self, service):
        response = service.dispatch("index", make_request("GET", "/"))
        assert response.body["name"] == "ModemHub API"
        assert "users" in response.body["endpoints"]

    def test_unknown_route(self, service):
        response = service.dispatch("nope", make_request("GET", "/api/nope"))
        assert response.status == 404
        assert response.body == {"error": "Not Found", "path": "/api/nope"}

    def test_metrics_summary(self, service):
        service.dispatch("users", make_request("GET"))
        response = service.dispatch("metrics", make_request("GET", "/api/metrics"))
        assert response.status == 200
        assert response.body["registry"] == {"users": 4, "next_id": 5}
        assert response.body["requests"]["total"] >= 1

    def test_metrics_prometheus(self, service):
        service.dispatch("users", make_request("GET"))
        response = service.dispatch("metrics", make_request("GET", "/api/metrics?format=prometheus"))
        assert response.status == 200
        assert b"modemhub_requests_total" in response.encoded()
        assert response.content_type.startswith("text/plain")

    def test_unexpected_error_is_500(self, service, monkeypatch):
        def boom(request):
            raise RuntimeError("registry exploded")

        monkeypatch.setattr(service, "users", boom)
        response = service.dispatch("users", make_request("GET"))
        assert response.status == 500
        assert response.body["message"] == "registry exploded"
        assert "details" not in response.body
