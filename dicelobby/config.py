"""Configuration management for the shared dice table."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class TableConfig(BaseModel):
    """Arena geometry and dice count."""

    num_dice: int = Field(default=5, ge=1)
    field_radius: float = Field(default=2.5, gt=0)
    dice_size: float = Field(default=0.5, gt=0)
    wall_height: float = 1.0


class MaterialPairConfig(BaseModel):
    """Friction and bounciness between two materials."""

    friction: float = Field(default=0.3, ge=0)
    restitution: float = Field(default=0.0, ge=0, le=1)


class PhysicsConfig(BaseModel):
    """Rigid body engine configuration."""

    gravity: float = -9.82
    fixed_dt: float = Field(default=1 / 60, gt=0)
    max_sub_steps: int = Field(default=3, ge=1)
    solver_iterations: int = Field(default=10, ge=1)
    dice_mass: float = Field(default=1.0, gt=0)
    linear_damping: float = Field(default=0.05, ge=0, lt=1)
    angular_damping: float = Field(default=0.05, ge=0, lt=1)
    ground_dice: MaterialPairConfig = Field(
        default_factory=lambda: MaterialPairConfig(friction=0.5, restitution=0.7)
    )
    dice_wall: MaterialPairConfig = Field(
        default_factory=lambda: MaterialPairConfig(friction=0.1, restitution=0.9)
    )
    dice_dice: MaterialPairConfig = Field(
        default_factory=lambda: MaterialPairConfig(friction=0.3, restitution=0.5)
    )
    allow_sleep: bool = True
    sleep_speed_limit: float = Field(default=0.1, ge=0)
    sleep_time_limit: float = Field(default=1.0, ge=0)
    # Extra decay for slow dice that are touching something
    rest_damping: float = Field(default=3.0, ge=0)
    rest_linear_limit: float = Field(default=0.5, ge=0)
    rest_angular_limit: float = Field(default=4.0, ge=0)


class RollConfig(BaseModel):
    """Throw and settle policy."""

    tick_rate: float = Field(default=60.0, gt=0)
    settle_threshold: float = Field(default=0.05, ge=0)
    use_wall_clock_dt: bool = True
    # Simulated seconds before a roll is force-settled. None keeps rolls unbounded.
    max_roll_seconds: Optional[float] = None
    throw_velocity_y: tuple[float, float] = (4.0, 7.0)
    throw_velocity_z: tuple[float, float] = (-13.0, -9.0)
    throw_jitter_x: float = 1.5
    spin: tuple[float, float] = (15.0, 25.0)
    seed: Optional[int] = None


class ServerConfig(BaseModel):
    """Web server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    table_id: str = "lobby"
    send_timeout_ms: int = Field(default=100, gt=0)
    max_slow_strikes: int = Field(default=3, ge=1)


class AppConfig(BaseModel):
    """Main application configuration."""

    table: TableConfig = Field(default_factory=TableConfig)
    physics: PhysicsConfig = Field(default_factory=PhysicsConfig)
    roll: RollConfig = Field(default_factory=RollConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


DEFAULT_CONFIG_PATH = Path("config.yaml")


def load_config(config_path: Path | str | None = None) -> AppConfig:
    """Read the table, physics, roll and server sections from YAML.

    A missing file means every default applies. Sections or keys left out of
    the file keep their defaults too.

    Raises:
        pydantic.ValidationError: If a value is out of range
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    if not path.exists():
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return AppConfig(**data)


def save_config(config: AppConfig, config_path: Path | str | None = None) -> None:
    """Write every setting, defaults included, so the file documents the table."""
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH

    # Tuples become lists so safe_load can read them back
    data = config.model_dump(mode="json")

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Loaded once per process; the app factory and the CLI share it
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Settings for this process, read from ./config.yaml on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Path | str | None = None) -> AppConfig:
    """Replace the process settings with the ones in ``config_path``.

    The server entry point calls this before uvicorn imports the app, so
    ``--config`` reaches ``create_app``.
    """
    global _config
    _config = load_config(config_path)
    return _config
