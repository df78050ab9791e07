"""
Rendering Toolkit Loader

Acquires the three pieces the viewer needs (rendering engine, GLB asset
loader, navigation controller) from an ordered list of sources. The first
source that yields all three wins; a toolkit is never assembled from parts
of different sources.

Sources:
    LocalToolkitSource         - modules installed in the running environment
    PinnedRemoteToolkitSource  - version-pinned pure-Python wheels fetched from
                                 a package index into a local cache
"""

import asyncio
import hashlib
import importlib
import importlib.util
import sys
import zipfile
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

import httpx

from snap3d.core.exceptions import LibraryUnavailableException
from snap3d.core.logging_config import get_logger

logger = get_logger("viewer.loader")


class Toolkit(NamedTuple):
    engine: Any
    asset_loader: Any
    navigation: Any


# (module, export name); None means the module itself
ENGINE_EXPORT = ("pyrender", None)
ASSET_LOADER_EXPORT = ("trimesh", "load")
NAVIGATION_EXPORT = ("render_engine.controls", "OrbitControls")

# Compiled requirements of the engine that no pure-Python wheel can provide
HOST_MODULES = ("numpy", "scipy", "PIL")


def resolve_export(module: Any, name: Optional[str]) -> Any:
    """Named attribute, else the module's `default`, else the module itself."""
    if name and hasattr(module, name):
        return getattr(module, name)
    if hasattr(module, "default"):
        return getattr(module, "default")
    return module


def import_toolkit(exports: Sequence[Tuple[str, Optional[str]]] = (
    ENGINE_EXPORT, ASSET_LOADER_EXPORT, NAVIGATION_EXPORT
)) -> Toolkit:
    resolved = [resolve_export(importlib.import_module(module), name) for module, name in exports]
    return Toolkit(*resolved)


class ToolkitSource:
    """One way of obtaining a complete toolkit."""

    name = "source"

    async def acquire(self) -> Toolkit:
        raise NotImplementedError


class LocalToolkitSource(ToolkitSource):
    name = "local"

    def __init__(self, exports: Sequence[Tuple[str, Optional[str]]] = (
        ENGINE_EXPORT, ASSET_LOADER_EXPORT, NAVIGATION_EXPORT
    )):
        self.exports = tuple(exports)

    async def acquire(self) -> Toolkit:
        return import_toolkit(self.exports)


class PinnedRemoteToolkitSource(ToolkitSource):
    """
    Fetch pinned pure-Python (`none-any`) wheels and import the toolkit from them.

    Wheels are looked up through the index JSON API
    (`{index}/pypi/{name}/{version}/json`), checked against the published
    sha256 digest, unpacked under `cache_dir` and put on `sys.path`. Already
    unpacked pins are reused without network access.
    `host_modules` must already be importable; they are checked before any
    download.
    """

    name = "pinned-remote"

    def __init__(
        self,
        pins: Sequence[Tuple[str, str]],
        index_url: str = "https://pypi.org",
        cache_dir: str = "data/toolkit",
        http_client: Optional[httpx.AsyncClient] = None,
        exports: Sequence[Tuple[str, Optional[str]]] = (
            ENGINE_EXPORT, ASSET_LOADER_EXPORT, NAVIGATION_EXPORT
        ),
        host_modules: Sequence[str] = HOST_MODULES,
    ):
        if not pins:
            raise ValueError("at least one pin is required")
        self.pins = list(pins)
        self.index_url = index_url.rstrip("/")
        self.cache_dir = Path(cache_dir)
        self.http_client = http_client
        self.exports = tuple(exports)
        self.host_modules = tuple(host_modules)

    def _check_host_modules(self) -> None:
        missing = [name for name in self.host_modules if importlib.util.find_spec(name) is None]
        if missing:
            raise ImportError(f"pinned toolkit needs installed modules: {', '.join(missing)}")

    def _target_dir(self, dist: str, version: str) -> Path:
        return self.cache_dir / f"{dist}-{version}"

    @staticmethod
    def _pick_wheel(release: Dict[str, Any]) -> Dict[str, Any]:
        for entry in release.get("urls", []):
            if entry.get("packagetype") == "bdist_wheel" and entry.get("filename", "").endswith("-none-any.whl"):
                return entry
        raise LookupError("no pure-Python wheel published")

    async def _fetch(self, client: httpx.AsyncClient, dist: str, version: str) -> Path:
        target = self._target_dir(dist, version)
        if target.is_dir() and any(target.iterdir()):
            logger.debug(f"Using cached {dist}=={version} at {target}")
            return target

        response = await client.get(f"{self.index_url}/pypi/{dist}/{version}/json")
        response.raise_for_status()
        wheel = self._pick_wheel(response.json())

        logger.info(f"Downloading {wheel['filename']}")
        download = await client.get(wheel["url"])
        download.raise_for_status()

        expected = wheel.get("digests", {}).get("sha256")
        if expected and hashlib.sha256(download.content).hexdigest() != expected:
            raise ValueError(f"sha256 mismatch for {wheel['filename']}")

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        wheel_path = self.cache_dir / wheel["filename"]
        wheel_path.write_bytes(download.content)
        with zipfile.ZipFile(wheel_path) as archive:
            archive.extractall(target)
        return target

    async def acquire(self) -> Toolkit:
        self._check_host_modules()
        client = self.http_client or httpx.AsyncClient(timeout=60.0, follow_redirects=True)
        try:
            for dist, version in self.pins:
                target = await self._fetch(client, dist, version)
                if str(target) not in sys.path:
                    sys.path.insert(0, str(target))
        finally:
            if self.http_client is None:
                await client.aclose()

        importlib.invalidate_caches()
        return import_toolkit(self.exports)


class ToolkitLoader:
    """Try each source in order; fail only when all of them fail."""

    def __init__(self, sources: Sequence[ToolkitSource]):
        self.sources = list(sources)

    async def load_rendering_toolkit(self) -> Toolkit:
        attempts: List[Dict[str, str]] = []

        for source in self.sources:
            try:
                toolkit = await source.acquire()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Toolkit source {source.name!r} failed: {type(e).__name__}: {e}")
                attempts.append({"source": source.name, "error": f"{type(e).__name__}: {e}"})
                continue

            if attempts:
                logger.info(f"Rendering toolkit acquired from fallback source {source.name!r}")
            else:
                logger.debug(f"Rendering toolkit acquired from {source.name!r}")
            return toolkit

        logger.error(f"Rendering toolkit unavailable after {len(attempts)} attempt(s)")
        raise LibraryUnavailableException(attempts)


def default_toolkit_loader(settings) -> ToolkitLoader:
    """Local modules first, then the configured pinned wheels."""
    sources: List[ToolkitSource] = [LocalToolkitSource()]
    if settings.toolkit_pins:
        sources.append(PinnedRemoteToolkitSource(
            pins=settings.toolkit_pins,
            index_url=settings.toolkit_index_url,
            cache_dir=settings.toolkit_cache_dir,
        ))
    return ToolkitLoader(sources)
