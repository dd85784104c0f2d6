from __future__ import annotations

import argparse
import json

from prepxl.core.config.manager import ConfigManager
from prepxl.core.config.paths import ConfigFsPaths


def main() -> None:
    ap = argparse.ArgumentParser(description="Print the effective session-guard configuration (config/session.json).")
    ap.add_argument("--root", default=".", help="Project root directory (default: .)")
    args = ap.parse_args()

    cm = ConfigManager(fs=ConfigFsPaths(str(args.root or ".")), logger=None, read_only=True)
    cfg = cm.load_all()
    print(json.dumps(cfg.model_dump(), indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
