from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from eth_utils import decode_hex, is_hex

from deployer import config
from deployer.errors import DeployError, ErrorKind
from deployer.models import ContractArtifact

log = logging.getLogger(__name__)


def resolve_manifest(path: Optional[Path] = None, *, cwd: Optional[Path] = None) -> Path:
    """Locate the contract's Cargo.toml.

    A directory resolves to <dir>/Cargo.toml, an explicit file is taken as is,
    and no path at all means Cargo.toml in the working directory.
    """
    base = Path(cwd) if cwd is not None else Path.cwd()
    if path is None:
        candidate = base / config.MANIFEST_FILENAME
    else:
        p = Path(path)
        if not p.is_absolute():
            p = base / p
        candidate = p if p.name == config.MANIFEST_FILENAME else p / config.MANIFEST_FILENAME
    if not candidate.is_file():
        raise DeployError(ErrorKind.MANIFEST_NOT_FOUND, f"manifest not found: {candidate}")
    return candidate.resolve()


def _read_manifest(manifest_path: Path) -> Dict[str, Any]:
    try:
        with manifest_path.open("rb") as fh:
            return tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise DeployError(ErrorKind.MANIFEST_NOT_FOUND, f"unreadable manifest {manifest_path}", cause=exc) from exc


def contract_name(manifest: Dict[str, Any]) -> str:
    lib_name = (manifest.get("lib") or {}).get("name")
    if lib_name:
        return str(lib_name)
    pkg_name = (manifest.get("package") or {}).get("name")
    if not pkg_name:
        raise DeployError(ErrorKind.MANIFEST_NOT_FOUND, "manifest has no [package].name")
    # cargo-contract names artifacts after the lib target
    return str(pkg_name).replace("-", "_")


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise DeployError(ErrorKind.ARTIFACT_NOT_FOUND, f"unreadable artifact {path}", cause=exc) from exc
    if not isinstance(data, dict):
        raise DeployError(ErrorKind.ARTIFACT_NOT_FOUND, f"artifact is not a JSON object: {path}")
    return data


def _wasm_from_bundle(bundle: Dict[str, Any], path: Path) -> bytes:
    raw = (bundle.get("source") or {}).get("wasm")
    if not isinstance(raw, str) or not is_hex(raw):
        raise DeployError(ErrorKind.ARTIFACT_NOT_FOUND, f"bundle has no wasm code: {path}")
    return decode_hex(raw)


def load_artifact(manifest_path: Path) -> ContractArtifact:
    """Load the build output that `cargo contract build` left next to the manifest."""
    manifest = _read_manifest(manifest_path)
    name = contract_name(manifest)
    build_dir = manifest_path.parent / config.BUILD_SUBDIR

    bundle_path = build_dir / f"{name}.contract"
    wasm_path = build_dir / f"{name}.wasm"
    metadata_path = build_dir / f"{name}.json"

    if bundle_path.is_file():
        bundle = _read_json(bundle_path)
        wasm = _wasm_from_bundle(bundle, bundle_path)
        log.debug("loaded contract bundle %s (%d bytes of wasm)", bundle_path, len(wasm))
        return ContractArtifact(
            manifest_path=manifest_path,
            name=name,
            wasm=wasm,
            metadata_path=bundle_path,
            metadata=bundle,
        )

    if wasm_path.is_file() and metadata_path.is_file():
        metadata = _read_json(metadata_path)
        try:
            wasm = wasm_path.read_bytes()
        except OSError as exc:
            raise DeployError(ErrorKind.ARTIFACT_NOT_FOUND, f"unreadable wasm {wasm_path}", cause=exc) from exc
        return ContractArtifact(
            manifest_path=manifest_path,
            name=name,
            wasm=wasm,
            metadata_path=metadata_path,
            metadata=metadata,
        )

    raise DeployError(
        ErrorKind.ARTIFACT_NOT_FOUND,
        f"no build output for {name} in {build_dir} (run `cargo contract build` first)",
    )


def _spec_section(metadata: Dict[str, Any]) -> Dict[str, Any]:
    if isinstance(metadata.get("spec"), dict):
        return metadata["spec"]
    # V1..V3 metadata nests everything under the version key
    for key in ("V3", "V2", "V1"):
        nested = metadata.get(key)
        if isinstance(nested, dict) and isinstance(nested.get("spec"), dict):
            return nested["spec"]
    return {}


def _label(item: Dict[str, Any]) -> str:
    label = item.get("label", item.get("name"))
    if isinstance(label, list):
        return "::".join(str(x) for x in label)
    return str(label or "")


def constructor_signatures(metadata: Dict[str, Any]) -> Dict[str, List[str]]:
    """Map constructor name -> ordered argument labels."""
    out: Dict[str, List[str]] = {}
    for ctor in _spec_section(metadata).get("constructors") or []:
        if not isinstance(ctor, dict):
            continue
        name = _label(ctor)
        if not name:
            continue
        out[name] = [_label(arg) for arg in (ctor.get("args") or []) if isinstance(arg, dict)]
    return out


def check_constructor(artifact: ContractArtifact, constructor: str, args: Sequence[str]) -> List[str]:
    """Validate constructor name and arity; return the argument labels."""
    signatures = constructor_signatures(artifact.metadata)
    if constructor not in signatures:
        known = ", ".join(sorted(signatures)) or "none"
        raise DeployError(
            ErrorKind.INVALID_ARGUMENTS,
            f"constructor {constructor!r} not found in {artifact.name} (available: {known})",
        )
    labels = signatures[constructor]
    if len(labels) != len(args):
        raise DeployError(
            ErrorKind.INVALID_ARGUMENTS,
            f"constructor {constructor!r} expects {len(labels)} argument(s) {labels}, got {len(args)}",
        )
    return labels
