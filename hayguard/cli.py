from __future__ import annotations

import argparse
import logging
import threading
from typing import List, Optional

from hayguard.bootstrap import build_engine_system
from hayguard.config.logging_setup import setup_logging
from hayguard.core.config.yaml_config import load_app_config

logger = logging.getLogger("hayguard")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the HayGuard telemetry engine.")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--generate-now", action="store_true", help="Run one pass right after start")
    args = parser.parse_args(argv)

    cfg = load_app_config(args.config)
    setup_logging(cfg.logging.level, cfg.logging.format)

    wiring = build_engine_system(cfg=cfg)
    wiring.runtime.start()
    if args.generate_now:
        wiring.engine.generate_now()

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("interrupted, shutting down")
    finally:
        wiring.runtime.stop()
        wiring.store.close()
    return 0
