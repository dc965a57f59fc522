import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path


@dataclass
class TimerSettings:
    """User preferences stored in config.json."""

    rider_name: str = ""
    sound_enabled: bool = True
    lap_notifications: bool = True
    # Granting the viewfinder permission is what allows timing to start.
    camera_permission: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "TimerSettings":
        """
        Build settings from a config dict, ignoring unknown keys and keeping
        defaults for missing ones.
        """
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def display_rider_name(self) -> str:
        return self.rider_name.strip()


def load_settings(config_path: Path) -> TimerSettings:
    if not config_path.exists():
        return TimerSettings()
    try:
        config_data = json.loads(config_path.read_text())
        return TimerSettings.from_dict(config_data)
    except Exception as e:
        logging.error(f"Failed to read {config_path}: {e}")
        return TimerSettings()


def save_settings(config_path: Path, settings: TimerSettings) -> None:
    """Write settings back, preserving any other keys already in the file."""
    config_data = {}
    if config_path.exists():
        try:
            config_data = json.loads(config_path.read_text())
        except Exception as e:
            logging.error(f"Failed to read {config_path}, overwriting: {e}")
            config_data = {}

    config_data.update(asdict(settings))
    config_path.write_text(json.dumps(config_data, indent=2))
    logging.info(f"Updated {config_path} with new settings")
