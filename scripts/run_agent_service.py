"""
SentryX Agent Launcher

Starts the agent control plane (WebSocket /ws + read-only HTTP views).

Usage:
    python scripts/run_agent_service.py --host 0.0.0.0 --port 5273 --config ./server.json

Environment Variables:
    SENTRYX_PORT: agent port (default: 5273)
    SENTRYX_BIND_HOST: bind address (default: 127.0.0.1)
    SENTRYX_CONFIG: configuration file (default: ./server.json)
    SENTRYX_MASTER_KEY: overrides master_key from the configuration file
"""
import argparse
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import uvicorn

from agent import AGENT_BIND_HOST, AGENT_PORT, CONFIG_PATH
from agent.config import load_config
from agent.service import create_app
from agent.startup_profile import StartupProfile, validate_agent_profile
from shared.logging_config import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the SentryX agent control plane")
    parser.add_argument("--host", default=AGENT_BIND_HOST)
    parser.add_argument("--port", type=int, default=AGENT_PORT)
    parser.add_argument("--config", default=CONFIG_PATH)
    parser.add_argument("--log-level", default=os.getenv("SENTRYX_LOG_LEVEL", "INFO"))
    parser.add_argument("--log-file", default=os.getenv("SENTRYX_LOG_FILE"))
    args = parser.parse_args()

    logger = setup_logging("agent", level=args.log_level, log_file=args.log_file)

    try:
        config = load_config(args.config)
        validate_agent_profile(StartupProfile(host=args.host, port=args.port), config)
    except ValueError as e:
        logger.error(f"Invalid startup configuration: {e}")
        sys.exit(2)

    print("=" * 60)
    print("SentryX Agent")
    print("=" * 60)
    print(f"Address: ws://{args.host}:{args.port}/ws")
    print(f"Apps directory: {config.apps_dir}")
    print(f"Registry: {config.resolved_registry_path}")
    print(f"Unit directory: {config.unit_dir}")
    print("=" * 60)

    app = create_app(config=config)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
