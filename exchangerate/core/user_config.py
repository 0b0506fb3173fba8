"""Per-user CLI preferences stored as JSON.

Location: ~/.config/exchangerate/config.json. A missing file yields defaults;
`set_value` validates each key before it is written.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

VALID_KEYS = ("api_key", "auth_method", "default_format", "use_color", "use_cache")
_TRUE = ("true", "yes", "1")
_FALSE = ("false", "no", "0")


class UserConfigError(Exception):
    pass


def get_config_path() -> Path:
    return Path.home() / ".config" / "exchangerate" / "config.json"


class UserConfig(BaseModel):
    api_key: Optional[str] = None
    auth_method: Optional[str] = "bearer"
    default_format: Optional[str] = "text"
    use_color: Optional[bool] = True
    use_cache: Optional[bool] = True

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "UserConfig":
        path = path or get_config_path()
        if not path.exists():
            return cls()
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise UserConfigError(f"Failed to read config file: {e}") from e
        except ValidationError as e:
            raise UserConfigError(f"Failed to parse config file: {e}") from e

    def save(self, path: Optional[Path] = None) -> Path:
        path = path or get_config_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            raise UserConfigError(f"Failed to write config file: {e}") from e
        return path

    def set_value(self, key: str, value: str) -> str:
        """Apply one `config set` update and return a confirmation line."""
        lowered = value.lower()
        if key == "api_key":
            self.api_key = value
            return "API key updated"
        if key == "auth_method":
            if lowered not in ("bearer", "url"):
                raise UserConfigError(
                    f"Invalid auth method: {value}. Valid values are 'bearer' or 'url'."
                )
            self.auth_method = lowered
            return f"Auth method set to: {lowered}"
        if key == "default_format":
            if lowered not in ("text", "json", "csv"):
                raise UserConfigError(
                    f"Invalid format: {value}. Valid values are 'text', 'json', or 'csv'."
                )
            self.default_format = lowered
            return f"Default format set to: {lowered}"
        if key in ("use_color", "use_cache"):
            flag = _parse_bool(value)
            setattr(self, key, flag)
            label = "Color output" if key == "use_color" else "Caching"
            return f"{label} {'enabled' if flag else 'disabled'}"
        raise UserConfigError(
            f"Invalid configuration key: {key}. Valid keys are "
            + ", ".join(f"'{k}'" for k in VALID_KEYS)
            + "."
        )

    def masked_api_key(self) -> str:
        if not self.api_key:
            return "Not set"
        return f"{self.api_key[:8]}..."


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise UserConfigError(f"Invalid boolean value: {value}. Use 'true' or 'false'.")
