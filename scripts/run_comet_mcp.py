#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[mcp] comet={os.environ.get('COMET_PATH', 'auto')} | "
    f"data_dir={os.environ.get('COMET_MCP_DATA_DIR', '~/.comet-mcp')} | "
    f"port={os.environ.get('COMET_MCP_PORT', '9223')} | "
    f"home={os.environ.get('COMET_HOME_URL', 'https://www.perplexity.ai/')}",
    file=sys.stderr,
)

from mcp_servers.comet.main import main  # noqa: E402

if __name__ == "__main__":
    main()
