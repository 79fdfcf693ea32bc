import pytest

from app.jobs.models import TaskInput

from tests.helpers import RecordingStore


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def body_context():
    return TaskInput(height=180, current_weight=81, age=30, gender="male", activity_level="active")
