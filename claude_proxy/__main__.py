"""Run the proxy: python -m claude_proxy [config.yaml]"""

import sys

from .logging import setup_logging
from .main import run

if __name__ == "__main__":
    setup_logging()
    run(sys.argv[1] if len(sys.argv) > 1 else None)
