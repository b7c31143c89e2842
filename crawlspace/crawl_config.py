"""
Server and REPL configuration, read from a YAML file.
"""
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional, Union

import yaml

CONFIG_ENV_VAR = "CRAWLSPACE_CONFIG"

DEFAULT_BANNER = """\
crawlspace: {{#registered}}{{.}} {{/registered}}
reserved: {{#reserved}}{{.}} {{/reserved}}"""


class ConfigError(ValueError):
    pass


@dataclass
class Config:
    host: str = "localhost"
    port: int = 2222
    prompt: str = "> "
    # Mustache template; sees `registered` and `reserved` name lists
    banner: str = DEFAULT_BANNER
    reserved: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Optional[dict]) -> 'Config':
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"config must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known, key=str)
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(map(str, unknown))}")
        config = cls(**data)
        if not isinstance(config.port, int) or isinstance(config.port, bool):
            raise ConfigError(f"port must be an integer, got {config.port!r}")
        if not isinstance(config.reserved, list) or not all(isinstance(n, str) for n in config.reserved):
            raise ConfigError("reserved must be a list of names")
        for key in ("host", "prompt", "banner"):
            if not isinstance(getattr(config, key), str):
                raise ConfigError(f"{key} must be a string")
        return config


def load_config(path: Union[str, Path, None] = None) -> Config:
    """Load the config at ``path``, or at $CRAWLSPACE_CONFIG, or the defaults."""
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return Config()
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read config {str(path)!r}: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid config {str(path)!r}: {e}") from e
    return Config.from_mapping(data)
