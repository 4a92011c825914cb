from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional


def configure_logging(log_dir: Optional[Path] = None, *, verbose: bool = False) -> logging.Logger:
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.handlers.clear()

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(message)s")

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(fmt)
    logger.addHandler(stream_handler)

    if log_dir is not None:
        log_path = Path(log_dir) / "deploy.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)

    # substrate-interface logs every websocket frame at DEBUG
    logging.getLogger("substrateinterface").setLevel(logging.INFO if verbose else logging.WARNING)
    return logger


def write_deployment_record(path: Path, record: Dict[str, Any]) -> Path:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(record, indent=2), encoding="utf-8")
    return out_path
