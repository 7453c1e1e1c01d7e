#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[containers] mode={os.environ.get('CONTAINERS_MODE', 'extension')} | "
    f"state={os.environ.get('CONTAINERS_STATE_FILE', '~/.cookie-containers/state.json')} | "
    f"bridge_port={os.environ.get('CONTAINERS_BRIDGE_PORT', '8766')}",
    file=sys.stderr,
)

from cookie_containers.main import main  # noqa: E402

if __name__ == "__main__":
    main()
