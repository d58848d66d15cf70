"""Shared fixtures for triage tests."""

from __future__ import annotations

from typing import Callable

import pytest

from fakes import FakeClassifierClient, FakeFeedClient, RecordingListener, make_item
from wikitriage.configuration.settings import TriageSettings
from wikitriage.triage.context import TriageContext
from wikitriage.triage.models import WorkItem
from wikitriage.triage.queue import TriageQueue


@pytest.fixture
def settings() -> TriageSettings:
    return TriageSettings.model_validate(
        {
            "feed": {"refresh_seconds": 2.0, "max_backoff_seconds": 16.0},
            "queue": {"max_queue_size": 5, "history_size": 10},
            "filters": {"max_edit_count": 50, "operator_name": "Patroller"},
            "classifier": {"enabled": True, "min_interval_seconds": 0.0},
        }
    )


@pytest.fixture
def feed() -> FakeFeedClient:
    return FakeFeedClient()


@pytest.fixture
def classifier() -> FakeClassifierClient:
    return FakeClassifierClient()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def context(feed, settings, classifier, listener) -> TriageContext:
    return TriageContext.create(feed, settings, classifier, listener)


@pytest.fixture
def queue(context) -> TriageQueue:
    return TriageQueue(context)


@pytest.fixture
def item_factory() -> Callable[..., WorkItem]:
    return make_item
