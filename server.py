# server.py
import argparse
import logging

import uvicorn
from api import create_app
from config_utils import get_config
from helpers import setup_logging

logger = logging.getLogger(__name__)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the plant monitor API server")
    parser.add_argument("--config", default=None, help="path to config.yml")
    args = parser.parse_args(argv)

    cfg = get_config(args.config)
    app_cfg = cfg.get("app", {}) or {}
    setup_logging(app_cfg.get("log_level", "INFO"))

    app = create_app(cfg)
    host, port = app_cfg.get("host", "0.0.0.0"), int(app_cfg.get("port", 3001))
    logger.info("Plant monitor API running on http://%s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
