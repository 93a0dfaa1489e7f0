"""
扩展器服务API测试

使用 FastAPI TestClient 直接调用路由，不触发应用生命周期，
扩展器、编排器和节点缓存由测试直接设置。
"""
import pytest
from fastapi.testclient import TestClient

from scheduler_extender.api.v1.utils import NODE_NOT_CACHED
from scheduler_extender.core.app_state import set_orchestrator, set_served_extender, update_node_cache
from scheduler_extender.main import app
from scheduler_extender.schemas.preemption import MetaVictims, Victims
from scheduler_extender.services.fake_extender import FakeExtender, constant_prioritizer, false_predicate
from scheduler_extender.services.orchestrator import SchedulingOrchestrator

from helpers import GPU, make_node, make_pod

API = "/api/v1"


def _dump(model):
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


@pytest.fixture
def client(served_extender):
    return TestClient(app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_root_reports_extender(client):
    data = client.get("/").json()
    assert data["extender"] == "gpu-ext"
    assert data["orchestrator"] is False


def test_readiness(client):
    update_node_cache([make_node("n1")])
    data = client.get("/ready").json()
    assert data == {"status": "ready", "extender": "gpu-ext", "cached_nodes": 1}

    set_served_extender(None)
    assert client.get("/ready").status_code == 503


def test_requests_fail_without_extender():
    set_served_extender(None)
    client = TestClient(app)
    response = client.post(f"{API}/filter", json={"pod": _dump(make_pod()), "nodenames": []})
    assert response.status_code == 503


class TestFilter:
    def test_full_nodes(self, client):
        nodes = [make_node("n1", gpu=2), make_node("n2"), make_node("n3", gpu=1, pods=[make_pod("h", gpu=1)])]
        response = client.post(f"{API}/filter", json={
            "pod": _dump(make_pod(gpu=1)),
            "nodes": [_dump(node) for node in nodes],
        })

        assert response.status_code == 200
        data = response.json()
        assert [node["name"] for node in data["nodes"]] == ["n1"]
        assert list(data["failedAndUnresolvableNodes"]) == ["n2"]
        assert list(data["failedNodes"]) == ["n3"]
        assert "nodenames" not in data
        assert "error" not in data

    def test_node_names_resolved_from_cache(self, client):
        update_node_cache([make_node("n1", gpu=1), make_node("n2")])
        response = client.post(f"{API}/filter", json={
            "pod": _dump(make_pod(gpu=1)),
            "nodenames": ["n1", "n2", "unknown"],
        })

        data = response.json()
        assert data["nodenames"] == ["n1"]
        assert data["failedNodes"] == {"unknown": NODE_NOT_CACHED}
        assert "n2" in data["failedAndUnresolvableNodes"]

    def test_uninterested_pod_passes_all_nodes(self, client):
        update_node_cache([make_node("n1"), make_node("n2")])
        response = client.post(f"{API}/filter", json={"pod": _dump(make_pod()), "nodenames": ["n1", "n2"]})
        assert response.json()["nodenames"] == ["n1", "n2"]

    def test_extender_error_reported_in_error_field(self, client):
        set_served_extender(FakeExtender("broken", filter_error=RuntimeError("inventory down")))
        response = client.post(f"{API}/filter", json={"pod": _dump(make_pod()), "nodes": [_dump(make_node("n1"))]})

        assert response.status_code == 200
        assert response.json()["error"] == "过滤节点失败: inventory down"


class TestPrioritize:
    def test_scores(self, client):
        response = client.post(f"{API}/prioritize", json={
            "pod": _dump(make_pod(gpu=1)),
            "nodes": [_dump(make_node("n1", gpu=4)), _dump(make_node("n2"))],
        })
        assert response.status_code == 200
        assert response.json() == [{"host": "n1", "score": 7}]

    def test_uninterested_pod_gets_no_scores(self, client):
        response = client.post(f"{API}/prioritize", json={
            "pod": _dump(make_pod()),
            "nodes": [_dump(make_node("n1", gpu=4))],
        })
        assert response.json() == []

    def test_extender_error_is_500(self, client):
        set_served_extender(FakeExtender("broken", prioritizer=True, prioritize_error=RuntimeError("boom")))
        response = client.post(f"{API}/prioritize", json={"pod": _dump(make_pod()), "nodes": []})
        assert response.status_code == 500


class TestBind:
    BINDING = {"podName": "p", "podNamespace": "default", "podUID": "u", "node": "n1"}

    def test_bind(self, client, binder):
        response = client.post(f"{API}/bind", json=self.BINDING)
        assert response.status_code == 200
        assert response.json() == {"error": None}
        assert [b.node for b in binder.bindings] == ["n1"]

    def test_not_a_binder(self, client):
        set_served_extender(FakeExtender("no-bind"))
        response = client.post(f"{API}/bind", json=self.BINDING)
        assert "不支持绑定" in response.json()["error"]

    def test_binder_failure(self, client, binder):
        binder.error = RuntimeError("pod already assigned")
        response = client.post(f"{API}/bind", json=self.BINDING)
        assert response.json() == {"error": "pod already assigned"}


class TestPreemption:
    def test_meta_victims(self, client):
        holder = make_pod("holder", gpu=1)
        update_node_cache([make_node("n1", gpu=1, pods=[holder]), make_node("n2")])
        response = client.post(f"{API}/preemption", json={
            "pod": _dump(make_pod("urgent", gpu=1, priority=5)),
            "nodeNameToMetaVictims": {
                "n1": _dump(MetaVictims.from_victims(Victims(pods=[holder]))),
                "n2": {"pods": []},
            },
        })

        assert response.status_code == 200
        result = response.json()["nodeNameToMetaVictims"]
        assert list(result) == ["n1"]
        assert result["n1"]["pods"] == [{"uid": "uid-holder"}]

    def test_unknown_victim_uid_is_400(self, client):
        update_node_cache([make_node("n1", gpu=1)])
        response = client.post(f"{API}/preemption", json={
            "pod": _dump(make_pod(gpu=1)),
            "nodeNameToMetaVictims": {"n1": {"pods": [{"uid": "missing"}]}},
        })
        assert response.status_code == 400


def test_node_cache_routes(client):
    response = client.put(f"{API}/nodes", json=[_dump(make_node("n1", gpu=1)), _dump(make_node("n2"))])
    assert response.json() == ["n1", "n2"]

    listed = client.get(f"{API}/nodes").json()
    assert [node["name"] for node in listed] == ["n1", "n2"]
    assert listed[0]["allocatable"][GPU] == "1"


class TestSchedule:
    def _request(self, nodes, **kwargs):
        body = {"pod": _dump(make_pod(gpu=1)), "nodes": [_dump(node) for node in nodes]}
        body.update(kwargs)
        return body

    def test_without_orchestrator(self, client):
        response = client.post(f"{API}/schedule", json=self._request([make_node("n1")]))
        assert response.status_code == 503

    def test_schedule(self, client):
        scorer = FakeExtender("scorer", prioritizers=[(constant_prioritizer({"n1": 1}), 1)], binder=True)
        set_orchestrator(SchedulingOrchestrator([scorer]))

        response = client.post(f"{API}/schedule", json=self._request(
            [make_node("n1"), make_node("n2")], baseScores={"n2": 3}
        ))

        assert response.status_code == 200
        data = response.json()
        assert data["suggested_host"] == "n2"
        assert data["scores"] == {"n1": 1, "n2": 3}
        assert data["binder"] == "scorer"

    def test_fit_error_is_422(self, client):
        set_orchestrator(SchedulingOrchestrator([FakeExtender("none", predicates=[false_predicate])]))

        response = client.post(f"{API}/schedule", json=self._request([make_node("n1")]))

        assert response.status_code == 422
        assert response.json()["detail"]["failedNodes"] == {"n1": "false predicate"}

    def test_extender_failure_is_503(self, client):
        set_orchestrator(SchedulingOrchestrator([FakeExtender("broken", filter_error=RuntimeError("down"))]))
        response = client.post(f"{API}/schedule", json=self._request([make_node("n1")]))
        assert response.status_code == 503

    def test_bind_failure_is_500(self, client):
        binder = FakeExtender("binder", binder=True, bind_error=RuntimeError("conflict"))
        set_orchestrator(SchedulingOrchestrator([binder]))
        response = client.post(f"{API}/schedule", json=self._request([make_node("n1")]))
        assert response.status_code == 500
        assert "conflict" in response.json()["detail"]["message"]
