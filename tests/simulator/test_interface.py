"""Tests for simulator configuration profiles and the Rich dashboard."""

import pytest
from rich.console import Console

from gesture_simulator.engine_model import SimulatedEngine
from gesture_simulator.engine_model import make_sample
from gesture_simulator.interface.config_manager import ConfigurationManager
from gesture_simulator.interface.config_manager import SimulatorConfig
from gesture_simulator.interface.rich_dashboard import RichDashboard
from gesture_simulator.virtual_engine_server import VirtualEngineServer
from smart_gesture.labels import IndexedLabel

pytestmark = pytest.mark.simulator


@pytest.fixture
def config_manager(tmp_path):
    return ConfigurationManager(str(tmp_path / "sim_config"))


class TestConfigurationManager:
    def test_save_and_load_profile(self, config_manager):
        config = SimulatorConfig(port=7000, latency_ms=15.0, seed=3)
        assert config_manager.save_config(config, "bench")
        loaded = config_manager.load_config("bench")
        assert loaded.port == 7000
        assert loaded.latency_ms == 15.0
        assert loaded.seed == 3
        assert config_manager.current_config is loaded

    def test_missing_profile(self, config_manager):
        assert config_manager.load_config("nope") is None

    def test_list_and_delete_profiles(self, config_manager):
        config_manager.save_config(SimulatorConfig(), "b")
        config_manager.save_config(SimulatorConfig(), "a")
        assert config_manager.list_profiles() == ["a", "b"]
        assert config_manager.delete_profile("a")
        assert not config_manager.delete_profile("a")
        assert not config_manager.delete_profile("current")
        assert config_manager.list_profiles() == ["b"]

    def test_corrupt_profile_is_rejected(self, config_manager):
        (config_manager.profiles_dir / "broken.json").write_text("{not json")
        assert config_manager.load_config("broken") is None

    def test_summary(self, config_manager):
        assert config_manager.get_config_summary()["current"] is None
        config_manager.current_config = SimulatorConfig(name="x")
        assert config_manager.get_config_summary()["current"]["name"] == "x"


class TestRichDashboard:
    @pytest.fixture
    def dashboard(self):
        engine = SimulatedEngine()
        engine.set_custom_gesture(IndexedLabel(5), [make_sample((0, 1, 0))])
        engine.train_signature(1, make_sample((1, 1, 0)))
        return RichDashboard(VirtualEngineServer(engine), refresh_rate_ms=200, no_color=True)

    def test_render_contains_engine_state(self, dashboard):
        console = Console(width=120, no_color=True)
        with console.capture() as capture:
            for renderable in dashboard.render():
                console.print(renderable)
        output = capture.get()
        assert "Gesture Simulator Dashboard" in output
        assert "#5" in output

    def test_event_log_is_bounded(self, dashboard):
        for i in range(dashboard.max_log_entries + 10):
            dashboard.add_event(f"event {i}")
        assert len(dashboard.event_log) == dashboard.max_log_entries
        assert dashboard.event_log[-1].endswith(f"event {dashboard.max_log_entries + 9}")

    def test_pause_and_refresh_rate(self, dashboard):
        dashboard.toggle_pause()
        assert dashboard.state.paused
        dashboard.set_refresh_rate(10)
        assert dashboard.state.refresh_rate_ms == 50
        dashboard.set_refresh_rate(5000)
        assert dashboard.state.refresh_rate_ms == 2000
