import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from doist.client import TodoistAPIError, TodoistClient


def _response(status_code=200, payload=None, text=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = text if text is not None else ("{}" if payload is not None else "")
    return response


def test_client_requires_token():
    """Client raises ValueError if the token is missing."""
    with pytest.raises(ValueError, match="TODOIST_API_TOKEN"):
        TodoistClient(access_token="")


@pytest.mark.asyncio
async def test_get_tasks_uses_filter_endpoint():
    payload = {"results": [{"id": "1", "content": "A"}, {"id": "2", "content": "B", "parent_id": "1"}]}
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(payload=payload))
        instance.aclose = AsyncMock()

        client = TodoistClient("token")
        tasks = await client.get_tasks("today")
        await client.close()

    assert [t.id for t in tasks] == ["1", "2"]
    assert tasks[1].parent_id == "1"
    method, path = instance.request.call_args.args
    assert (method, path) == ("GET", "/tasks/filter")
    assert instance.request.call_args.kwargs["params"] == {"query": "today"}
    instance.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_tasks_without_filter_lists_all():
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(payload={"results": []}))

        tasks = await TodoistClient("token").get_tasks()

    assert tasks == []
    assert instance.request.call_args.args == ("GET", "/tasks")


@pytest.mark.asyncio
async def test_error_status_raises_api_error():
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(status_code=404, text="Task not found"))

        client = TodoistClient("token")
        with pytest.raises(TodoistAPIError, match="404") as excinfo:
            await client.get_task("missing")

    assert excinfo.value.detail == "Task not found"


@pytest.mark.asyncio
async def test_post_sends_request_id():
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(status_code=204))

        await TodoistClient("token").close_task("42")

    call = instance.request.call_args
    assert call.args == ("POST", "/tasks/42/close")
    assert "X-Request-Id" in call.kwargs["headers"]


@pytest.mark.asyncio
async def test_complete_task_reschedules_then_closes():
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(status_code=204))

        await TodoistClient("token").complete_task("42")

    calls = instance.request.call_args_list
    assert [c.args for c in calls] == [("POST", "/tasks/42"), ("POST", "/tasks/42/close")]
    assert calls[0].kwargs["json"]["due_datetime"].endswith("Z")


@pytest.mark.asyncio
async def test_get_completed_tasks_returns_cursor():
    payload = {"items": [{"id": "9", "content": "Done", "completed_at": "2025-03-12T10:00:00Z"}], "next_cursor": "abc"}
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(payload=payload))

        tasks, cursor = await TodoistClient("token").get_completed_tasks(
            "2025-03-12T00:00:00Z", "2025-03-12T23:59:59Z", by_due_date=True, project_id="p1", limit=10
        )

    assert [t.id for t in tasks] == ["9"]
    assert cursor == "abc"
    call = instance.request.call_args
    assert call.args == ("GET", "/tasks/completed/by_due_date")
    assert call.kwargs["params"] == {
        "since": "2025-03-12T00:00:00Z",
        "until": "2025-03-12T23:59:59Z",
        "project_id": "p1",
        "limit": 10,
    }


@pytest.mark.asyncio
async def test_reference_records_parsed():
    responses = [
        _response(payload={"results": [{"id": "p1", "name": "Inbox", "inbox_project": True}]}),
        _response(payload={"results": [{"id": "s1", "project_id": "p1", "name": "Later", "section_order": 2}]}),
        _response(payload={"results": [{"id": "l1", "name": "errand"}]}),
    ]
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(side_effect=responses)

        client = TodoistClient("token")
        projects = await client.get_projects()
        sections = await client.get_sections()
        labels = await client.get_labels()

    assert projects[0].is_inbox_project
    assert sections[0].order == 2
    assert labels[0].name == "errand"


@pytest.mark.asyncio
async def test_get_project_by_id():
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(payload={"id": "p1", "name": "Work", "is_shared": True}))

        project = await TodoistClient("token").get_project("p1")

    assert instance.request.call_args.args == ("GET", "/projects/p1")
    assert project.name == "Work"
    assert project.is_shared


@pytest.mark.asyncio
async def test_delete_uses_delete_method():
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(status_code=204))

        client = TodoistClient("token")
        await client.delete_project("p1")
        await client.delete_section("s1")
        await client.delete_label("l1")

    calls = instance.request.call_args_list
    assert [c.args for c in calls] == [
        ("DELETE", "/projects/p1"),
        ("DELETE", "/sections/s1"),
        ("DELETE", "/labels/l1"),
    ]
    assert "X-Request-Id" not in calls[0].kwargs["headers"]


@pytest.mark.asyncio
async def test_get_comments_of_task():
    payload = {"results": [{"id": 7, "item_id": 42, "content": "Looks good", "posted_at": "2025-03-01T09:00:00Z"}]}
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(payload=payload))

        comments = await TodoistClient("token").get_comments(task_id="42")

    call = instance.request.call_args
    assert call.args == ("GET", "/comments")
    assert call.kwargs["params"] == {"task_id": "42"}
    assert comments[0].id == "7"
    assert comments[0].task_id == "42"


@pytest.mark.asyncio
async def test_get_comments_of_project():
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(payload={"results": []}))

        comments = await TodoistClient("token").get_comments(project_id="p1")

    assert comments == []
    assert instance.request.call_args.kwargs["params"] == {"project_id": "p1"}


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [{}, {"task_id": "1", "project_id": "p1"}])
async def test_get_comments_needs_one_thread(kwargs):
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock()

        with pytest.raises(ValueError, match="exactly one"):
            await TodoistClient("token").get_comments(**kwargs)

    instance.request.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_comment_posts_body():
    body = {"content": "Done?", "task_id": "42"}
    with patch("doist.client.httpx.AsyncClient") as MockClient:
        instance = MockClient.return_value
        instance.request = AsyncMock(return_value=_response(payload={"id": "c1", "task_id": "42", "content": "Done?"}))

        comment = await TodoistClient("token").create_comment(body)

    call = instance.request.call_args
    assert call.args == ("POST", "/comments")
    assert call.kwargs["json"] == body
    assert comment.id == "c1"
