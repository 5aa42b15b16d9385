"""Configuration system using platformdirs for cross-platform paths."""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import platformdirs

APP_NAME = "mcp-planner"
APP_AUTHOR = "mcp-planner"


@dataclass
class Config:
	"""Central configuration with XDG/platform conventions."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	db_path: Path = field(init=False)
	log_dir: Path = field(init=False)

	# User-configurable
	db_path_override: Path | None = None
	page_size: int = 10
	busy_timeout: float = 5.0

	def __post_init__(self) -> None:
		self.db_path = self.db_path_override or self.data_dir / "planner.db"
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.config_dir.mkdir(parents=True, exist_ok=True)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)
		self.db_path.parent.mkdir(parents=True, exist_ok=True)


def _apply_env_overrides(config: Config) -> Config:
	"""Apply MCP_PLANNER_* environment variable overrides."""
	path_env = {
		"MCP_PLANNER_CONFIG_DIR": "config_dir",
		"MCP_PLANNER_DATA_DIR": "data_dir",
		"MCP_PLANNER_DB_PATH": "db_path_override",
	}
	for env_key, attr in path_env.items():
		val = os.getenv(env_key)
		if val:
			setattr(config, attr, Path(val))

	typed_env = {
		"MCP_PLANNER_PAGE_SIZE": ("page_size", int),
		"MCP_PLANNER_BUSY_TIMEOUT": ("busy_timeout", float),
	}
	for env_key, (attr, cast) in typed_env.items():
		val = os.getenv(env_key)
		if val:
			try:
				setattr(config, attr, cast(val))
			except ValueError as e:
				raise ValueError(f"Invalid value for {env_key}: {val!r}") from e

	# Recompute derived paths after overrides
	config.__post_init__()
	return config


def _apply_toml(config: Config) -> Config:
	"""Apply config.toml overrides if file exists."""
	toml_path = config.config_dir / "config.toml"
	if not toml_path.exists():
		return config

	with open(toml_path, "rb") as f:
		data = tomllib.load(f)

	path_fields = {"config_dir", "data_dir"}
	for key, val in data.items():
		if key == "db_path":
			config.db_path_override = Path(os.path.expanduser(val))
		elif key in path_fields:
			setattr(config, key, Path(os.path.expanduser(val)))
		elif key in ("page_size", "busy_timeout"):
			setattr(config, key, val)

	# Recompute derived paths after toml overrides
	config.__post_init__()
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	if config.page_size < 1:
		raise ValueError(f"page_size must be >= 1, got {config.page_size}")
	config.ensure_dirs()
	return config

