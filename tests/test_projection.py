import pytest
import requests

from va_gateway.config import Settings
from va_gateway.projection import ProjectionError, TaskTrackerClient, build_task_tracker


class StubResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class StubSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json, headers, timeout):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def test_create_task_posts_to_list():
    session = StubSession(StubResponse(200, {"id": "abc123"}))
    client = TaskTrackerClient("pk_token", "https://tracker.test/api/v2/", session=session)

    assert client.create_task("list-1", name="[SUP-1] Hi", description="body") == "abc123"
    call = session.calls[0]
    assert call["url"] == "https://tracker.test/api/v2/list/list-1/task"
    assert call["json"] == {"name": "[SUP-1] Hi", "description": "body"}
    assert call["headers"]["Authorization"] == "pk_token"


def test_add_comment():
    session = StubSession(StubResponse(200, {}))
    TaskTrackerClient("pk", "https://tracker.test", session=session).add_comment("t1", "hello")
    assert session.calls[0]["url"] == "https://tracker.test/task/t1/comment"
    assert session.calls[0]["json"]["comment_text"] == "hello"


def test_http_error_raises_projection_error():
    client = TaskTrackerClient("pk", "https://tracker.test", session=StubSession(StubResponse(401)))
    with pytest.raises(ProjectionError) as exc:
        client.create_task("list-1", name="x", description="y")
    assert exc.value.status_code == 401


def test_transport_error_raises_projection_error():
    session = StubSession(error=requests.ConnectionError("boom"))
    with pytest.raises(ProjectionError):
        TaskTrackerClient("pk", "https://tracker.test", session=session).create_task("l", name="x", description="y")


def test_missing_task_id_is_an_error():
    client = TaskTrackerClient("pk", "https://tracker.test", session=StubSession(StubResponse(200, {})))
    with pytest.raises(ProjectionError):
        client.create_task("l", name="x", description="y")


def test_tracker_disabled_without_token():
    assert build_task_tracker(Settings()) is None
    assert isinstance(build_task_tracker(Settings(task_tracker_token="pk")), TaskTrackerClient)


def test_non_object_body_raises_projection_error():
    client = TaskTrackerClient("pk", "https://tracker.test", session=StubSession(StubResponse(200, [])))
    with pytest.raises(ProjectionError):
        client.create_task("l", name="x", description="y")
