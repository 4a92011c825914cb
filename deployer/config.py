# deployer/config.py
# NOTE:
# Never put a real secret URI in this file. Pass it with --suri or the
# INK_DEPLOY_SURI env var and keep it out of git.

import os
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


# Node endpoint (substrate-contracts-node default)
DEFAULT_URL = os.getenv("INK_DEPLOY_URL", "ws://localhost:9944")

# Named network preset (configs/networks/<name>.json). Empty == use DEFAULT_URL.
DEFAULT_NETWORK = os.getenv("INK_DEPLOY_NETWORK", "")

DEFAULT_CONSTRUCTOR = "new"
DEFAULT_VALUE = "0"

# Generic Substrate prefix; overridden by system_properties.ss58Format.
DEFAULT_SS58_FORMAT = 42

# Build layout produced by `cargo contract build`
MANIFEST_FILENAME = "Cargo.toml"
BUILD_SUBDIR = Path("target") / "ink"

# JSON-RPC (token metadata). All calls are clamped to this range.
RPC_TIMEOUT_MIN_S = 1.0
RPC_TIMEOUT_MAX_S = 30.0
RPC_TIMEOUT_S = _env_float("INK_DEPLOY_RPC_TIMEOUT_S", 10.0)
RPC_RETRY_COUNT = _env_int("INK_DEPLOY_RPC_RETRIES", 2)
RPC_BACKOFF_BASE_S = 0.35
# upper bound of the random jitter added to each backoff sleep
RPC_BACKOFF_JITTER_S = 0.25


def metadata_deadline_s() -> float:
    """Overall deadline for the token metadata query: every attempt plus backoff."""
    attempt_s = max(RPC_TIMEOUT_MIN_S, min(RPC_TIMEOUT_MAX_S, float(RPC_TIMEOUT_S)))
    retries = max(0, int(RPC_RETRY_COUNT))
    backoff_s = sum(RPC_BACKOFF_BASE_S * (2 ** a) + RPC_BACKOFF_JITTER_S for a in range(retries))
    return (retries + 1) * attempt_s + backoff_s


# Deadlines for the two chain steps. Submission waits for inclusion.
DRY_RUN_TIMEOUT_S = _env_float("INK_DEPLOY_DRY_RUN_TIMEOUT_S", 30.0)
SUBMIT_TIMEOUT_S = _env_float("INK_DEPLOY_SUBMIT_TIMEOUT_S", 120.0)

# Per-signer lock files (one deployment in flight per account)
LOCK_DIR = Path(os.getenv("INK_DEPLOY_LOCK_DIR", str(Path.home() / ".ink-deploy" / "locks")))

# u64 bound for both weight components
MAX_WEIGHT_PART = 2**64 - 1
