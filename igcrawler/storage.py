"""Output paths for downloaded resources: <out>/<username>/images|videos/<timestamp>_<name>."""

import re
from pathlib import Path
from urllib.parse import urlparse

from igcrawler.models import Resource

def sanitize_basename(url: str, default_ext: str = "") -> str:
    """Last path segment of url as a safe filename (query dropped, odd chars replaced)."""
    parts = [p for p in (urlparse(url).path or "/").split("/") if p]
    name = parts[-1] if parts else "index"
    name = re.sub(r"[^\w.-]", "_", name)
    name = name.strip("_") or "file"
    if len(name) > 200:
        name = name[:200]
    if default_ext and "." not in name:
        name = f"{name}.{default_ext}"
    return name


def _ensure_unique(path: Path) -> Path:
    """If path exists, add numeric suffix to avoid overwrite."""
    if not path.exists():
        return path
    stem = path.stem
    ext = path.suffix
    parent = path.parent
    n = 1
    while True:
        candidate = parent / f"{stem}_{n}{ext}"
        if not candidate.exists():
            return candidate
        n += 1


def path_for_resource(out_dir: Path, username: str, resource: Resource) -> Path:
    """Where resource is saved; never an existing file."""
    kind = "videos" if resource.is_video else "images"
    ext = "mp4" if resource.is_video else "jpg"
    user_dir = re.sub(r"[^\w.-]", "_", username) or "unknown"
    name = f"{resource.timestamp}_{sanitize_basename(resource.url, ext)}"
    return _ensure_unique(out_dir / user_dir / kind / name)
