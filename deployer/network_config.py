from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from deployer import config

NETWORKS_DIR = Path(__file__).resolve().parents[1] / "configs" / "networks"


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    url: str
    ss58_format: Optional[int]
    type_registry_preset: Optional[str]


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def available_networks(base_dir: Optional[Path] = None) -> List[str]:
    base = Path(base_dir) if base_dir is not None else NETWORKS_DIR
    if not base.is_dir():
        return []
    return sorted(p.stem for p in base.glob("*.json"))


def load_network_config(name: Optional[str] = None, *, base_dir: Optional[Path] = None) -> Optional[NetworkConfig]:
    """Load configs/networks/<name>.json; the name falls back to INK_DEPLOY_NETWORK."""
    base = Path(base_dir) if base_dir is not None else NETWORKS_DIR
    key = str(name or os.getenv("INK_DEPLOY_NETWORK") or config.DEFAULT_NETWORK or "").strip().lower()
    if not key:
        return None
    data = _read_json(base / f"{key}.json")
    if not data:
        return None

    url = str(data.get("url") or "").strip()
    if not url:
        return None
    ss58 = None
    if data.get("ss58_format") is not None:
        try:
            ss58 = int(data["ss58_format"])
        except (TypeError, ValueError):
            ss58 = None
    preset = str(data.get("type_registry_preset") or "").strip() or None

    return NetworkConfig(
        name=str(data.get("name") or key).strip().lower(),
        url=url,
        ss58_format=ss58,
        type_registry_preset=preset,
    )
