"""
Service configuration read from environment variables.

The entry point loads a `.env` file before the settings are first built, so
every value here can come from either the process environment or `.env`.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

DEFAULT_GEMINI_IMAGE_MODEL = "gemini-2.5-flash-image-preview"
# pyrender plus its pure-Python requirements; numpy, scipy and Pillow must be installed
DEFAULT_TOOLKIT_PINS = (
    "pyrender==0.1.45,PyOpenGL==3.1.7,pyglet==1.5.29,freetype-py==2.4.0,"
    "imageio==2.34.2,networkx==3.2.1,six==1.16.0,trimesh==4.4.9"
)


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return int(value)


def parse_pins(raw: str) -> List[Tuple[str, str]]:
    """Parse `dist==version,dist==version` into (distribution, version) pairs."""
    pins = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, version = item.partition("==")
        if not sep or not name.strip() or not version.strip():
            raise ValueError(f"Toolkit pin must look like 'name==version', got {item!r}")
        pins.append((name.strip(), version.strip()))
    return pins


@dataclass
class Settings:
    # Remote services
    gemini_api_key: Optional[str] = None
    gemini_image_model: str = DEFAULT_GEMINI_IMAGE_MODEL
    threed_api_url: Optional[str] = None
    threed_timeout_seconds: float = 300.0

    # Capture device
    camera_device_index: int = 0
    camera_facing_indices: Dict[str, int] = field(default_factory=dict)
    camera_allow_insecure: bool = False

    # Rendering toolkit acquisition
    toolkit_index_url: str = "https://pypi.org"
    toolkit_pins: List[Tuple[str, str]] = field(default_factory=lambda: parse_pins(DEFAULT_TOOLKIT_PINS))
    toolkit_cache_dir: str = "data/toolkit"

    # Viewer
    viewer_fps: float = 30.0
    viewer_default_width: int = 800

    # Service
    log_level: str = "INFO"
    log_file: Optional[str] = "logs/app.log"
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        facing = {}
        for mode, var in (("environment", "CAMERA_ENVIRONMENT_INDEX"), ("user", "CAMERA_USER_INDEX")):
            index = _env_optional_int(var)
            if index is not None:
                facing[mode] = index

        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_image_model=os.getenv("GEMINI_IMAGE_MODEL", DEFAULT_GEMINI_IMAGE_MODEL),
            threed_api_url=os.getenv("THREED_API_URL") or None,
            threed_timeout_seconds=float(os.getenv("THREED_TIMEOUT_SECONDS", "300")),
            camera_device_index=int(os.getenv("CAMERA_DEVICE_INDEX", "0")),
            camera_facing_indices=facing,
            camera_allow_insecure=_env_bool("CAMERA_ALLOW_INSECURE", False),
            toolkit_index_url=os.getenv("TOOLKIT_INDEX_URL", "https://pypi.org").rstrip("/"),
            toolkit_pins=parse_pins(os.getenv("TOOLKIT_PINS", DEFAULT_TOOLKIT_PINS)),
            toolkit_cache_dir=os.getenv("TOOLKIT_CACHE_DIR", "data/toolkit"),
            viewer_fps=float(os.getenv("VIEWER_FPS", "30")),
            viewer_default_width=int(os.getenv("VIEWER_DEFAULT_WIDTH", "800")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", "logs/app.log") or None,
            allowed_origins=[o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()],
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
