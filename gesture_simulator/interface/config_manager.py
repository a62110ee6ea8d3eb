"""
Configuration profiles for the gesture simulator.

A profile stores the network, latency and engine settings of one simulator
setup so it can be reused with ``--profile``.
"""

import json
import os
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict, fields, field
from datetime import datetime

logger = logging.getLogger(__name__)


@dataclass
class SimulatorConfig:
    """Main simulator configuration."""
    # Network settings
    host: str = "localhost"
    port: int = 6790
    debug_api_port: int = 8766

    # Engine settings
    latency_ms: float = 0.0
    score_noise: float = 0.0
    seed: Optional[int] = None
    log_level: str = "INFO"

    # Interface settings
    refresh_rate: int = 500
    debug_api: bool = False
    dashboard: bool = False

    # Metadata
    name: str = "default"
    description: str = "Default simulator configuration"
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    modified_at: str = field(default_factory=lambda: datetime.now().isoformat())


class ConfigurationManager:
    """Loads and saves simulator configuration profiles."""

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_dir: Directory to store configuration files. Defaults to ~/.gesture_simulator_config
        """
        if config_dir is None:
            config_dir = os.path.expanduser("~/.gesture_simulator_config")

        self.config_dir = Path(config_dir)
        self.profiles_dir = self.config_dir / "profiles"
        self.profiles_dir.mkdir(parents=True, exist_ok=True)

        self.current_config: Optional[SimulatorConfig] = None
        self.config_file = self.config_dir / "current_config.json"

        logger.info(f"Configuration manager initialized with config dir: {self.config_dir}")

    def _path_for(self, config_name: str) -> Path:
        if config_name == "current":
            return self.config_file
        return self.profiles_dir / f"{config_name}.json"

    def load_config(self, config_name: str = "current") -> Optional[SimulatorConfig]:
        """Load configuration from file.

        Args:
            config_name: Name of configuration to load. "current" loads the current active config.

        Returns:
            SimulatorConfig if found, None otherwise
        """
        config_file = self._path_for(config_name)
        if not config_file.exists():
            logger.warning(f"Configuration file not found: {config_file}")
            return None

        try:
            with open(config_file, 'r', encoding="utf-8") as f:
                config_data = json.load(f)
            known = {f.name for f in fields(SimulatorConfig)}
            config = SimulatorConfig(**{k: v for k, v in config_data.items() if k in known})
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Error loading configuration {config_name}: {e}")
            return None

        logger.info(f"Loaded configuration: {config_name}")
        self.current_config = config
        return config

    def save_config(self, config: SimulatorConfig, config_name: str = "current") -> bool:
        """Save configuration to file.

        Returns:
            True if saved successfully, False otherwise
        """
        config_file = self._path_for(config_name)
        try:
            config.modified_at = datetime.now().isoformat()
            with open(config_file, 'w', encoding="utf-8") as f:
                json.dump(asdict(config), f, indent=2)
        except OSError as e:
            logger.error(f"Error saving configuration {config_name}: {e}")
            return False

        logger.info(f"Saved configuration: {config_name}")
        return True

    def list_profiles(self) -> List[str]:
        return sorted(p.stem for p in self.profiles_dir.glob("*.json"))

    def delete_profile(self, profile_name: str) -> bool:
        profile_file = self._path_for(profile_name)
        if profile_name == "current" or not profile_file.exists():
            logger.warning(f"Profile not found: {profile_name}")
            return False
        try:
            profile_file.unlink()
        except OSError as e:
            logger.error(f"Error deleting profile {profile_name}: {e}")
            return False
        logger.info(f"Deleted profile: {profile_name}")
        return True

    def get_config_summary(self) -> Dict[str, Any]:
        config = self.current_config
        return {
            "config_dir": str(self.config_dir),
            "profiles": self.list_profiles(),
            "current": asdict(config) if config else None,
        }
