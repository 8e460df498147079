import httpx
import pytest

from services.notification_service.clients import ServiceClientError, UserDirectoryClient
from services.notification_service.models import UserInfo


def make_client(handler) -> UserDirectoryClient:
    return UserDirectoryClient(base_url="http://users.test/", transport=httpx.MockTransport(handler))


def test_get_user_info_by_id():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/users/7"
        return httpx.Response(200, json={"id": "7", "name": "Eve", "guardian_email": "parent@example.com"})

    assert make_client(handler).get_user_info_by_id("7") == UserInfo(
        name="Eve", guardian_email="parent@example.com"
    )


def test_unknown_user_raises_with_status():
    client = make_client(lambda request: httpx.Response(404, json={"detail": "User not found"}))

    with pytest.raises(ServiceClientError) as excinfo:
        client.get_user_info_by_id("99")

    assert excinfo.value.status_code == 404
    assert str(excinfo.value) == "User not found"


def test_connection_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ServiceClientError) as excinfo:
        make_client(handler).get_user_info_by_id("7")

    assert excinfo.value.status_code is None


def test_malformed_payload():
    client = make_client(lambda request: httpx.Response(200, json={"username": "eve"}))

    with pytest.raises(ServiceClientError):
        client.get_user_info_by_id("7")
