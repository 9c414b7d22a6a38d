import pytest

from fakes import (
    FakeDataStore,
    FakeObjectStore,
)


@pytest.fixture
def task_rows():
    return [
        {"id": f"task-{i}", "title": f"Task {i}", "status": "todo", "project_id": "proj-1"}
        for i in range(8)
    ]


@pytest.fixture
def data_store(task_rows):
    return FakeDataStore(
        rows={
            "tasks": task_rows,
            "notes": [{"id": "note-1", "title": "Journal", "content": "Slept badly"}],
            "projects": [{"id": "proj-1", "name": "Body", "is_archived": False}],
            "files": [],
        }
    )


@pytest.fixture
def object_store():
    return FakeObjectStore()
