import unittest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from gesture_simulator.engine_model import SimulatedEngine
from gesture_simulator.engine_model import make_sample
from gesture_simulator.interface.config_manager import ConfigurationManager
from gesture_simulator.interface.http_debug_server import DebugHTTPServer
from gesture_simulator.virtual_engine_server import VirtualEngineServer
from smart_gesture.labels import IndexedLabel


class TestDebugHTTPServer(unittest.TestCase):
    def setUp(self):
        self.engine = SimulatedEngine()
        self.engine_server = VirtualEngineServer(self.engine)
        self.mock_config_manager = MagicMock(spec=ConfigurationManager)
        self.debug_server = DebugHTTPServer(
            engine_server=self.engine_server,
            config_manager=self.mock_config_manager,
        )
        self.client = TestClient(self.debug_server.app)

    def test_root_endpoint(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["name"], "Gesture Simulator Debug API")
        self.assertIn("/status", data["endpoints"])

    def test_health_endpoint(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "clients": 0})

    def test_status_endpoint(self):
        self.engine.classify_common(make_sample((1, 0, 0)), [IndexedLabel(101)])
        data = self.client.get("/status").json()
        self.assertEqual(data["request_counts"], {"classify_common": 1})
        self.assertEqual(data["latency_ms"], 0)
        self.assertEqual(data["clients"], 0)

    def test_gestures_endpoint(self):
        self.engine.set_custom_gesture(IndexedLabel(5), [make_sample((0, 1, 0)), make_sample((0, 1, 0.1))])
        data = self.client.get("/gestures").json()
        self.assertEqual(data, {str(IndexedLabel(5)): 2})

    def test_signatures_endpoint_and_delete(self):
        self.engine.train_signature(2, make_sample((1, 1, 0)))
        data = self.client.get("/signatures").json()
        self.assertEqual(data, {"2": {"progress": 0.2, "complete": False}})

        response = self.client.delete("/signatures/2")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"deleted": 2})
        self.assertEqual(self.client.get("/signatures").json(), {})

    def test_delete_missing_signature(self):
        response = self.client.delete("/signatures/9")
        self.assertEqual(response.status_code, 404)

    def test_set_latency(self):
        response = self.client.post("/latency", json={"latency_ms": 12.5})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"latency_ms": 12.5})
        self.assertEqual(self.engine_server.global_latency_ms, 12.5)

    def test_negative_latency_rejected(self):
        response = self.client.post("/latency", json={"latency_ms": -1})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.engine_server.global_latency_ms, 0)

    def test_profiles_endpoint(self):
        self.mock_config_manager.list_profiles.return_value = ["bench", "noisy"]
        response = self.client.get("/profiles")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"profiles": ["bench", "noisy"]})

    def test_profiles_without_manager(self):
        server = DebugHTTPServer(engine_server=self.engine_server)
        response = TestClient(server.app).get("/profiles")
        self.assertEqual(response.status_code, 404)

    def test_server_info(self):
        info = self.debug_server.get_server_info()
        self.assertEqual(info["base_url"], "http://127.0.0.1:8766")


if __name__ == "__main__":
    unittest.main()
