from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

# Environment variables take precedence over the config file
ENV_BOT_TOKEN = "PLATEBOT_BOT_TOKEN"
ENV_RECOGNIZER_URL = "PLATEBOT_RECOGNIZER_URL"
ENV_STORAGE_URL = "PLATEBOT_STORAGE_URL"
ENV_LOG_LEVEL = "PLATEBOT_LOG_LEVEL"

LOCAL_CONFIG_NAME = Path(".platebot") / "platebot.toml"
HOME_CONFIG_PATH = Path.home() / ".platebot" / "platebot.toml"

DEFAULT_POLL_INTERVAL_S = 60.0
DEFAULT_LOG_LEVEL = "DEBUG"


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class BotSettings:
    bot_token: str
    recognizer_url: str
    storage_url: str
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    files_dir: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL
    config_path: Path | None = None

    @property
    def debug(self) -> bool:
        return self.log_level.upper() == "DEBUG"


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config(path: str | Path | None = None) -> tuple[dict, Path | None]:
    """Load the TOML config.

    An explicit path must exist. Without one the local and home locations are
    tried in order, and an empty config is returned when neither exists so
    that a purely environment-driven setup works.
    """
    if path:
        cfg_path = Path(path).expanduser()
        return _read_config(cfg_path), cfg_path

    for candidate in _config_candidates():
        if candidate.is_file():
            return _read_config(candidate), candidate
    return {}, None


def _describe(config_path: Path | None) -> str:
    return str(config_path) if config_path is not None else "the config file"


def _get_string(
    config: dict,
    config_path: Path | None,
    *,
    key: str,
    env: str,
    required: bool = True,
    default: str | None = None,
) -> str | None:
    env_value = os.environ.get(env)
    if env_value and env_value.strip():
        return env_value.strip()

    value = config.get(key)
    if value is None:
        if required:
            raise ConfigError(
                f"Missing `{key}`. Set {env} environment variable "
                f"or add `{key}` to {_describe(config_path)}."
            )
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"Invalid `{key}` in {_describe(config_path)}; "
            "expected a non-empty string."
        )
    return value.strip()


def get_bot_token(config: dict, config_path: Path | None) -> str:
    """Get bot token from environment variable or config file.

    Environment variable PLATEBOT_BOT_TOKEN takes precedence over config file.
    """
    token = _get_string(config, config_path, key="bot_token", env=ENV_BOT_TOKEN)
    assert token is not None
    return token


def get_service_url(
    config: dict, config_path: Path | None, *, key: str, env: str
) -> str:
    url = _get_string(config, config_path, key=key, env=env)
    assert url is not None
    if not url.startswith(("http://", "https://")):
        raise ConfigError(
            f"Invalid `{key}` in {_describe(config_path)}; expected an http(s) URL."
        )
    return url.rstrip("/")


def get_poll_interval(config: dict, config_path: Path | None) -> float:
    value = config.get("poll_interval_s", DEFAULT_POLL_INTERVAL_S)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(
            f"Invalid `poll_interval_s` in {_describe(config_path)}; "
            "expected a number."
        )
    if value <= 0:
        raise ConfigError(
            f"Invalid `poll_interval_s` in {_describe(config_path)}; "
            "expected a positive number."
        )
    return float(value)


def get_files_dir(config: dict, config_path: Path | None) -> Path | None:
    value = config.get("files_dir")
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"Invalid `files_dir` in {_describe(config_path)}; "
            "expected a non-empty string."
        )
    return Path(value).expanduser()


def load_settings(path: str | Path | None = None) -> BotSettings:
    config, config_path = load_config(path)
    log_level = _get_string(
        config,
        config_path,
        key="log_level",
        env=ENV_LOG_LEVEL,
        required=False,
        default=DEFAULT_LOG_LEVEL,
    )
    return BotSettings(
        bot_token=get_bot_token(config, config_path),
        recognizer_url=get_service_url(
            config, config_path, key="recognizer_url", env=ENV_RECOGNIZER_URL
        ),
        storage_url=get_service_url(
            config, config_path, key="storage_url", env=ENV_STORAGE_URL
        ),
        poll_interval_s=get_poll_interval(config, config_path),
        files_dir=get_files_dir(config, config_path),
        log_level=log_level or DEFAULT_LOG_LEVEL,
        config_path=config_path,
    )
