"""
HTTP API — Unit Tests
======================

Exercises the FastAPI surface through TestClient against a manager
built on fake backends with health monitoring off.
"""

from fastapi.testclient import TestClient

from fakes import fake_factories, make_entry
from switchyard.api import create_app
from switchyard.core.config import ManagerConfig
from switchyard.core.types import HealthState
from switchyard.manager import RegistryManager


def build_manager() -> RegistryManager:
    manager = RegistryManager(
        ManagerConfig(enable_health_monitoring=False), factories=fake_factories()
    )
    manager.register_model(make_entry("gpt", priority=1, cost=(0.001, 0.002)))
    manager.register_model(make_entry("llama", provider="ollama", priority=10))
    return manager


class TestHealthRoutes:
    def setup_method(self):
        self.manager = build_manager()
        self.client = TestClient(create_app(self.manager))

    def test_overall_health(self):
        response = self.client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy", "healthy": 2, "degraded": 0, "down": 0, "total": 2,
        }

    def test_degraded_and_unhealthy(self):
        self.manager.registry.update_health("gpt", status=HealthState.DEGRADED)
        assert self.client.get("/health").json()["status"] == "degraded"

        self.manager.registry.update_health("llama", status=HealthState.DOWN)
        assert self.client.get("/health").json()["status"] == "unhealthy"

    def test_model_health(self):
        models = self.client.get("/health/models").json()["models"]
        assert set(models) == {"gpt", "llama"}
        assert models["gpt"]["status"] == "healthy"


class TestModelRoutes:
    def setup_method(self):
        self.manager = build_manager()
        self.client = TestClient(create_app(self.manager))

    def test_list_models(self):
        models = self.client.get("/models").json()["models"]
        assert [m["id"] for m in models] == ["gpt", "llama"]

    def test_register_model(self):
        response = self.client.post("/models", json={
            "id": "claude",
            "provider": "anthropic",
            "capabilities": ["reasoning", "vision"],
            "cost": {"input_per_token": 0.003, "output_per_token": 0.015},
        })
        assert response.status_code == 201
        assert response.json() == {"id": "claude", "registered": True}
        entry = self.manager.registry.get_entry("claude")
        assert entry.capabilities.supports("vision")
        assert entry.cost.output_per_token == 0.015

    def test_register_unknown_provider(self):
        response = self.client.post("/models", json={"id": "x", "provider": "nowhere"})
        assert response.status_code == 400
        assert response.json()["error"] == "CONFIGURATION_ERROR"

    def test_register_validation_error(self):
        response = self.client.post("/models", json={"provider": "openai"})
        assert response.status_code == 422

    def test_unregister(self):
        response = self.client.delete("/models/llama")
        assert response.json() == {"id": "llama", "registered": False}
        assert "llama" not in self.manager.registry

    def test_unknown_model_is_404(self):
        response = self.client.post("/models/ghost/enable")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "MODEL_NOT_FOUND"
        assert body["detail"] == "Model with ID ghost not found"

    def test_enable_disable(self):
        assert self.client.post("/models/gpt/disable").json() == {"id": "gpt", "enabled": False}
        assert not self.manager.registry.is_enabled("gpt")
        assert self.client.post("/models/gpt/enable").json() == {"id": "gpt", "enabled": True}
        assert self.manager.registry.is_enabled("gpt")

    def test_pin_and_update_policy(self):
        pinned = self.client.put("/models/gpt/pin", json={"version": "2024-08-06"})
        assert pinned.json() == {"id": "gpt", "version_pin": "2024-08-06"}

        policy = self.client.put("/models/gpt/update-policy", json={"policy": "manual"})
        assert policy.json() == {"id": "gpt", "update_policy": "manual"}
        assert self.manager.registry.update_policy("gpt").value == "manual"

    def test_invalid_update_policy(self):
        response = self.client.put("/models/gpt/update-policy", json={"policy": "sometimes"})
        assert response.status_code == 422

    def test_preferences(self):
        response = self.client.put("/preferences", json={"default_provider": "ollama"})
        assert response.status_code == 200
        assert response.json()["default_provider"] == "ollama"
        assert self.manager.registry.preferences.default_provider == "ollama"


class TestTaskRoutes:
    def setup_method(self):
        self.manager = build_manager()
        self.client = TestClient(create_app(self.manager))

    def test_route(self):
        response = self.client.post("/route", json={"type": "reasoning"})
        assert response.status_code == 200
        decision = response.json()
        assert decision["model_id"] == "gpt"
        assert decision["fallback_chain"] == ["llama"]

    def test_route_with_no_candidates_is_503(self):
        response = self.client.post("/route", json={"type": "vision"})
        assert response.status_code == 503
        assert response.json()["error"] == "NO_MODEL_AVAILABLE"

    def test_execute_task(self):
        response = self.client.post("/tasks", json={
            "options": {"type": "reasoning"},
            "input": "hello",
        })
        assert response.status_code == 200
        assert response.json() == {"task": "reasoning", "result": "answer from gpt"}

    def test_execute_task_backend_failure(self):
        self.manager.register_model(make_entry(
            "broken", "anthropic", priority=0, config={"error": "upstream down"}
        ))
        response = self.client.post("/tasks", json={"input": "hello"})
        assert response.status_code == 502
        assert "upstream down" in response.json()["detail"]

    def test_execute_pipeline(self):
        response = self.client.post("/pipelines", json={
            "id": "p1",
            "steps": [
                {"id": "draft", "model": "gpt", "input": "write"},
                {"id": "review", "model": "llama", "input": "check {{draft}}", "dependencies": ["draft"]},
            ],
        })
        body = response.json()
        assert body["success"] is True
        assert [s["id"] for s in body["steps"]] == ["draft", "review"]
        assert body["result"] == "answer from llama"

    def test_coordinate_agents(self):
        response = self.client.post("/agents/coordinate", json={
            "task": "Summarize",
            "agents": [{"provider": "openai", "role": "writer"}],
        })
        results = response.json()["results"]
        assert "error" not in results["openai:writer"]
        assert results["openai:writer"]["response"] == "answer from gpt"

    def test_coordinate_requires_agents(self):
        response = self.client.post("/agents/coordinate", json={"task": "x", "agents": []})
        assert response.status_code == 422


class TestStatsRoutes:
    def setup_method(self):
        self.manager = build_manager()
        self.client = TestClient(create_app(self.manager))

    def test_stats(self):
        body = self.client.get("/stats").json()
        assert body["models"] == 2
        assert "cache" in body

    def test_costs(self):
        self.client.post("/tasks", json={"input": "abcdefgh"})
        body = self.client.get("/stats/costs").json()
        assert set(body["costs"]) == {"gpt"}
        assert body["total"] > 0

    def test_cache_stats(self):
        self.client.post("/tasks", json={"input": "same"})
        self.client.post("/tasks", json={"input": "same"})
        assert self.client.get("/stats/cache").json()["hits"] == 1

    def test_prometheus_metrics(self):
        self.client.post("/route", json={"type": "reasoning"})
        response = self.client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "switchyard_router_decisions_total" in response.text


class TestApplication:
    def test_lifespan_runs_manager_lifecycle(self):
        manager = build_manager()
        with TestClient(create_app(manager)):
            assert manager.worker_pool.running
        assert not manager.worker_pool.running

    def test_request_id_header(self):
        client = TestClient(create_app(build_manager()))
        echoed = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert echoed.headers["X-Request-ID"] == "abc123"
        assert echoed.headers["X-Process-Time"].endswith("ms")
        assert client.get("/health").headers["X-Request-ID"]

    def test_unhandled_errors_become_500(self):
        manager = build_manager()
        app = create_app(manager)

        @app.get("/explode")
        async def explode():
            raise RuntimeError("kaboom")

        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/explode")
        assert response.status_code == 500
        assert response.json() == {"error": "INTERNAL_ERROR", "detail": "Internal server error"}
