import os
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values

DEFAULT_PROMPT = (
    "kinetic product teaser with fast punchy cuts, neon glow accents, "
    "and bass-driven soundtrack"
)

CONFIG_SEARCH_PATHS = [
    Path("config.toml"),
    Path.home() / ".config" / "pulsecut" / "config.toml",
]

ENV_SEARCH_PATHS = [
    Path(".env"),
    Path(".env.local"),
]


@dataclass
class Config:
    prompt: str | None = None
    output_dir: str = "./pulsecut_renders"
    preset: str = "veryfast"
    max_width: int = 1080
    width: int = 1280
    height: int = 720


def load_dotenv() -> None:
    """Load env vars from .env files.

    Loading order is deterministic:
    1) .env
    2) .env.local

    Existing process environment variables are never overridden.
    """
    merged: dict[str, str] = {}
    for env_path in ENV_SEARCH_PATHS:
        if not env_path.exists():
            continue
        values = dotenv_values(env_path)
        for key, value in values.items():
            if value is not None:
                merged[key] = value

    for key, value in merged.items():
        os.environ.setdefault(key, value)


def load_config(path: str | None = None) -> Config:
    """Load config from TOML file.

    Search order: explicit path > ./config.toml > ~/.config/pulsecut/config.toml
    Missing config file is not an error (defaults are used).
    """
    load_dotenv()

    config_path = None
    if path:
        config_path = Path(path)
        if not config_path.exists():
            print(f"Config file not found: {path}")
            sys.exit(1)
    else:
        for candidate in CONFIG_SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        return Config()

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    planner = data.get("planner", {})
    output = data.get("output", {})

    return Config(
        prompt=planner.get("prompt"),
        output_dir=output.get("dir", Config.output_dir),
        preset=output.get("preset", Config.preset),
        max_width=int(output.get("max_width", Config.max_width)),
        width=int(output.get("width", Config.width)),
        height=int(output.get("height", Config.height)),
    )
