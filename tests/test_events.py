"""
Tests for EventRouter - notification fan-out to the queue.
"""

import pytest

from apiavailability.contracts.types import EventType, ObjectKind
from apiavailability.events import EventRouter, Notification, Tombstone
from apiavailability.index import DependencyIndex
from apiavailability.queue import RateLimitingQueue

from conftest import new_endpoints, new_local_api, new_remote_api, new_service


def drain(queue):
    names = []
    while True:
        item, _ = queue.get(timeout=0.01)
        if item is None:
            return names
        names.append(item)
        queue.done(item)


@pytest.fixture
def queue():
    q = RateLimitingQueue(name="test")
    yield q
    q.shut_down()


@pytest.fixture
def router(queue, metrics):
    return EventRouter(DependencyIndex(), queue, metrics)


class TestApiNotifications:
    """Tests for APIService add/update/delete routing."""

    def test_add_enqueues_and_indexes(self, router, queue):
        router.add_api(new_remote_api("v1.a"))

        assert drain(queue) == ["v1.a"]
        assert router.index.lookup("foo/bar") == {"v1.a"}

    def test_add_local_enqueues_without_index(self, router, queue):
        router.add_api(new_local_api("v1."))

        assert drain(queue) == ["v1."]
        assert len(router.index) == 0

    def test_update_moves_index_entry(self, router, queue):
        old = new_remote_api("v1.a", service_name="old")
        new = new_remote_api("v1.a", service_name="new")
        router.add_api(old)
        router.update_api(old, new)

        assert drain(queue) == ["v1.a"]
        assert router.index.lookup("foo/old") == frozenset()
        assert router.index.lookup("foo/new") == {"v1.a"}

    def test_delete_clears_index_and_gauge_without_enqueue(self, router, queue, metrics):
        api = new_remote_api("v1.a")
        router.add_api(api)
        drain(queue)
        metrics.set_unavailable("v1.a", True)

        router.delete_api(api)

        assert drain(queue) == []
        assert router.index.lookup("foo/bar") == frozenset()
        assert metrics.unavailable("v1.a") is None

    def test_delete_tombstone_with_object(self, router, queue):
        api = new_remote_api("v1.a")
        router.add_api(api)
        drain(queue)

        router.delete_api(Tombstone("v1.a", api))

        assert router.index.lookup("foo/bar") == frozenset()

    def test_delete_tombstone_without_object_uses_key(self, router, queue):
        router.add_api(new_remote_api("v1.a"))
        drain(queue)

        router.delete_api(Tombstone("v1.a"))

        assert router.index.backend_for("v1.a") is None
        assert router.index.lookup("foo/bar") == frozenset()

    def test_delete_of_unexpected_type_is_ignored(self, router, queue):
        router.add_api(new_remote_api("v1.a"))
        drain(queue)

        router.delete_api("not an APIService")

        assert router.index.lookup("foo/bar") == {"v1.a"}


class TestServiceFanOut:
    """Service and endpoints notifications reach exactly the dependents."""

    @pytest.fixture
    def populated(self, router, queue):
        router.add_api(new_remote_api("v1.a", service_name="shared"))
        router.add_api(new_remote_api("v1.b", service_name="shared"))
        router.add_api(new_remote_api("v1.c", service_name="other"))
        router.add_api(new_local_api("v1."))
        drain(queue)
        return router

    def test_service_change_enqueues_dependents_only(self, populated, queue):
        populated.service_changed(new_service(name="shared"))

        assert sorted(drain(queue)) == ["v1.a", "v1.b"]

    def test_endpoints_change_enqueues_dependents_only(self, populated, queue):
        populated.endpoints_changed(new_endpoints(name="other"))

        assert drain(queue) == ["v1.c"]

    def test_unrelated_service_enqueues_nothing(self, populated, queue):
        populated.service_changed(new_service(name="unrelated"))

        assert drain(queue) == []

    def test_same_name_in_other_namespace_enqueues_nothing(self, populated, queue):
        populated.service_changed(new_service(namespace="elsewhere", name="shared"))

        assert drain(queue) == []

    def test_service_tombstone_without_object(self, populated, queue):
        populated.service_changed(Tombstone("foo/shared"))

        assert sorted(drain(queue)) == ["v1.a", "v1.b"]

    def test_endpoints_tombstone_with_object(self, populated, queue):
        populated.endpoints_changed(Tombstone("foo/other", new_endpoints(name="other")))

        assert drain(queue) == ["v1.c"]


class TestDispatch:
    """Tests for Notification dispatch."""

    def test_dispatch_api_lifecycle(self, router, queue):
        api = new_remote_api("v1.a")
        router.dispatch(Notification(ObjectKind.AGGREGATED_API, EventType.ADDED, new=api))
        assert drain(queue) == ["v1.a"]

        router.dispatch(Notification(ObjectKind.AGGREGATED_API, EventType.DELETED, old=api))
        assert drain(queue) == []
        assert router.index.lookup("foo/bar") == frozenset()

    def test_dispatch_service_delete(self, router, queue):
        router.add_api(new_remote_api("v1.a"))
        drain(queue)

        router.dispatch(Notification(ObjectKind.SERVICE, EventType.DELETED, old=new_service()))

        assert drain(queue) == ["v1.a"]

    def test_dispatch_endpoints_update(self, router, queue):
        router.add_api(new_remote_api("v1.a"))
        drain(queue)

        router.dispatch(Notification(
            ObjectKind.ENDPOINTS, EventType.MODIFIED, new=new_endpoints(), old=new_endpoints()
        ))

        assert drain(queue) == ["v1.a"]
