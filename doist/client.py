"""Async Todoist API client using httpx.

Wraps the Todoist API v1 (https://api.todoist.com/api/v1). One
httpx.AsyncClient is created per client and reused for all requests.
Responses are parsed into the record models from doist.models.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

import httpx

from doist.config import DEFAULT_API_URL
from doist.models import Comment, Label, Project, Section, Task

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


class TodoistAPIError(Exception):
    """Raised when the Todoist API returns an error."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Todoist API error {status_code}: {detail}")


class TodoistClient:
    """Async wrapper around the Todoist API v1.

    Usage:
        client = TodoistClient(token)
        tasks = await client.get_tasks("(today | overdue)")
        await client.close()
    """

    def __init__(self, access_token: str, base_url: str = DEFAULT_API_URL) -> None:
        if not access_token:
            raise ValueError(
                "TODOIST_API_TOKEN is required. "
                "Set it in your .env file or pass it directly."
            )
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=REQUEST_TIMEOUT,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> "TodoistClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict | None = None,
        params: dict | None = None,
    ) -> dict | list | None:
        """Make an API request and handle errors consistently."""
        headers = {}
        if method == "POST":
            headers["X-Request-Id"] = str(uuid.uuid4())
        logger.debug(f"{method} {path} params={params}")
        response = await self._http.request(
            method,
            path,
            json=json_body,
            params=params,
            headers=headers,
        )
        if response.status_code >= 400:
            detail = response.text or f"HTTP {response.status_code}"
            raise TodoistAPIError(response.status_code, detail)
        if response.status_code == 204 or not response.text:
            return None
        return response.json()

    async def _get_results(self, path: str, params: dict | None = None) -> list[dict]:
        """GET a paginated endpoint and return the first page of results."""
        result = await self._request("GET", path, params=params)
        if isinstance(result, dict):
            return result.get("results", [])
        return result if isinstance(result, list) else []

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def get_tasks(self, filter_query: str | None = None) -> list[Task]:
        """GET /tasks or /tasks/filter — list active tasks."""
        if filter_query:
            items = await self._get_results("/tasks/filter", {"query": filter_query})
        else:
            items = await self._get_results("/tasks")
        return [Task.model_validate(item) for item in items]

    async def get_task(self, task_id: str) -> Task:
        """GET /tasks/{id} — get a single task."""
        result = await self._request("GET", f"/tasks/{task_id}")
        return Task.model_validate(result if isinstance(result, dict) else {})

    async def create_task(self, body: dict) -> Task:
        """POST /tasks — create a new task."""
        result = await self._request("POST", "/tasks", json_body=body)
        return Task.model_validate(result if isinstance(result, dict) else {})

    async def update_task(self, task_id: str, body: dict) -> None:
        """POST /tasks/{id} — update an existing task."""
        await self._request("POST", f"/tasks/{task_id}", json_body=body)

    async def close_task(self, task_id: str) -> None:
        """POST /tasks/{id}/close — like ticking the circle in the UI."""
        await self._request("POST", f"/tasks/{task_id}/close", json_body={})

    async def complete_task(self, task_id: str) -> None:
        """Close a task for good, even if it is recurring.

        The API cannot close a recurring task without rescheduling it, so the
        due date is first moved to now, which drops the recurrence.
        """
        now = datetime.now(timezone.utc).replace(microsecond=0)
        await self.update_task(task_id, {"due_datetime": now.isoformat().replace("+00:00", "Z")})
        await self.close_task(task_id)

    async def get_completed_tasks(
        self,
        since: str,
        until: str,
        *,
        by_due_date: bool = False,
        project_id: str | None = None,
        section_id: str | None = None,
        filter_query: str | None = None,
        limit: int | None = None,
    ) -> tuple[list[Task], str | None]:
        """GET /tasks/completed/by_completion_date (or by_due_date).

        Returns the first page of tasks and the cursor of the next page.
        """
        params: dict = {"since": since, "until": until}
        if project_id:
            params["project_id"] = project_id
        if section_id:
            params["section_id"] = section_id
        if filter_query:
            params["filter_query"] = filter_query
        if limit is not None:
            params["limit"] = limit
        path = "/tasks/completed/by_due_date" if by_due_date else "/tasks/completed/by_completion_date"
        result = await self._request("GET", path, params=params)
        if not isinstance(result, dict):
            return [], None
        tasks = [Task.model_validate(item) for item in result.get("items", [])]
        return tasks, result.get("next_cursor")

    # ------------------------------------------------------------------
    # Projects, sections, labels
    # ------------------------------------------------------------------

    async def get_projects(self) -> list[Project]:
        """GET /projects — list all projects."""
        return [Project.model_validate(p) for p in await self._get_results("/projects")]

    async def get_project(self, project_id: str) -> Project:
        """GET /projects/{id} — get a single project."""
        result = await self._request("GET", f"/projects/{project_id}")
        return Project.model_validate(result if isinstance(result, dict) else {})

    async def create_project(self, body: dict) -> Project:
        """POST /projects — create a new project."""
        result = await self._request("POST", "/projects", json_body=body)
        return Project.model_validate(result if isinstance(result, dict) else {})

    async def delete_project(self, project_id: str) -> None:
        """DELETE /projects/{id} — delete a project with all its tasks."""
        await self._request("DELETE", f"/projects/{project_id}")

    async def get_sections(self, project_id: str | None = None) -> list[Section]:
        """GET /sections — list sections, optionally of one project."""
        params = {"project_id": project_id} if project_id else None
        return [Section.model_validate(s) for s in await self._get_results("/sections", params)]

    async def get_section(self, section_id: str) -> Section:
        """GET /sections/{id} — get a single section."""
        result = await self._request("GET", f"/sections/{section_id}")
        return Section.model_validate(result if isinstance(result, dict) else {})

    async def create_section(self, body: dict) -> Section:
        """POST /sections — create a new section."""
        result = await self._request("POST", "/sections", json_body=body)
        return Section.model_validate(result if isinstance(result, dict) else {})

    async def delete_section(self, section_id: str) -> None:
        """DELETE /sections/{id} — delete a section with all its tasks."""
        await self._request("DELETE", f"/sections/{section_id}")

    async def get_labels(self) -> list[Label]:
        """GET /labels — list personal labels."""
        return [Label.model_validate(label) for label in await self._get_results("/labels")]

    async def get_label(self, label_id: str) -> Label:
        """GET /labels/{id} — get a single label."""
        result = await self._request("GET", f"/labels/{label_id}")
        return Label.model_validate(result if isinstance(result, dict) else {})

    async def create_label(self, body: dict) -> Label:
        """POST /labels — create a new personal label."""
        result = await self._request("POST", "/labels", json_body=body)
        return Label.model_validate(result if isinstance(result, dict) else {})

    async def delete_label(self, label_id: str) -> None:
        """DELETE /labels/{id} — delete a label and remove it from its tasks."""
        await self._request("DELETE", f"/labels/{label_id}")

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def get_comments(
        self,
        *,
        task_id: str | None = None,
        project_id: str | None = None,
    ) -> list[Comment]:
        """GET /comments — comments of one task or one project."""
        if (task_id is None) == (project_id is None):
            raise ValueError("Pass exactly one of task_id or project_id")
        params = {"task_id": task_id} if task_id else {"project_id": project_id}
        return [Comment.model_validate(c) for c in await self._get_results("/comments", params)]

    async def create_comment(self, body: dict) -> Comment:
        """POST /comments — comment on a task or a project."""
        result = await self._request("POST", "/comments", json_body=body)
        return Comment.model_validate(result if isinstance(result, dict) else {})
