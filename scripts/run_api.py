import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import uvicorn

from mindchat_auth.config import load_config
from mindchat_auth.logs import setup_logging


def main() -> None:
    cfg = load_config()
    setup_logging(cfg.LOG_LEVEL, json_format=cfg.LOG_JSON)

    host = os.environ.get("API_HOST", "0.0.0.0")
    port = int(os.environ.get("API_PORT", "8000"))
    uvicorn.run("mindchat_auth.api.server:app", host=host, port=port, reload=False, log_config=None)


if __name__ == "__main__":
    main()
