from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from deployer.errors import DeployError, ErrorKind

log = logging.getLogger(__name__)


def _is_pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
        return True
    except PermissionError:
        return True
    except OSError:
        return False


class SignerLock:
    """One deployment in flight per signing account.

    Two processes submitting from the same account race on the nonce, so the
    lock file is keyed by the SS58 address and holds the owner's pid.
    """

    def __init__(self, lock_dir: Path, address: str) -> None:
        self.address = str(address)
        self.path = Path(lock_dir) / f"{self.address}.lock"
        self._held = False

    def _read(self) -> Optional[Dict[str, Any]]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        return raw if isinstance(raw, dict) else None

    def _create(self, payload: Dict[str, Any]) -> None:
        fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        try:
            os.write(fd, json.dumps(payload).encode("utf-8"))
        finally:
            os.close(fd)

    def acquire(self, *, pid: Optional[int] = None) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
        if pid is None:
            pid = os.getpid()
        pid = int(pid)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"pid": pid, "address": self.address, "started_at_ms": int(time.time() * 1000)}

        # Fast path: atomic create
        try:
            self._create(payload)
            self._held = True
            return True, None, payload
        except FileExistsError:
            pass

        existing = self._read() or {}
        existing_pid = int(existing.get("pid") or 0)
        if existing_pid == pid:
            self._held = True
            return True, None, existing
        if existing_pid and _is_pid_alive(existing_pid):
            return False, "already_running", existing

        # Stale lock: replace
        log.warning("removing stale deploy lock %s (pid %s)", self.path, existing_pid or "?")
        self.path.unlink(missing_ok=True)
        payload["recovered"] = True
        try:
            self._create(payload)
        except FileExistsError:
            return False, "already_running", self._read()
        self._held = True
        return True, None, payload

    def release(self, *, pid: Optional[int] = None) -> bool:
        if pid is None:
            pid = os.getpid()
        existing = self._read()
        if not existing:
            self._held = False
            return True
        if int(existing.get("pid") or 0) not in (0, int(pid)):
            return False
        self.path.unlink(missing_ok=True)
        self._held = False
        return True

    def __enter__(self) -> "SignerLock":
        try:
            ok, reason, existing = self.acquire()
        except OSError as exc:
            raise DeployError(
                ErrorKind.DEPLOYMENT_LOCKED,
                f"cannot create lock file {self.path}: {exc.strerror or type(exc).__name__}",
                cause=exc,
            ) from exc
        if not ok:
            holder = (existing or {}).get("pid")
            raise DeployError(
                ErrorKind.DEPLOYMENT_LOCKED,
                f"another deployment from {self.address} is running (pid {holder}, {reason})",
            )
        return self

    def __exit__(self, *exc: Any) -> None:
        if self._held:
            self.release()
