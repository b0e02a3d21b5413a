"""
Agent Service Entrypoint

FastAPI application for the SentryX agent: the control WebSocket plus the
read-only HTTP views. Configuration, registry and collaborators are built
once at startup and shared by every connection through app.state.
"""
import logging
import warnings
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from agent.api import apps, control, health
from agent.config import AgentConfig, load_config
from agent.lifecycle import AppLifecycleManager
from agent.registry import AppRegistry
from agent.services.git_client import GitClient
from agent.services.process import ProcessRunner
from agent.services.service_manager import SystemdServiceManager
from agent.services.shell_runner import ShellRunner
from agent.startup_profile import missing_tools
from agent.telemetry import TelemetrySampler

warnings.filterwarnings("ignore", category=DeprecationWarning, module="fastapi")

logger = logging.getLogger(__name__)


def build_lifecycle(config: AgentConfig, registry: AppRegistry) -> AppLifecycleManager:
    """Wire the lifecycle manager to the real git/bash/systemctl collaborators"""
    runner = ProcessRunner(timeout_seconds=config.command_timeout_seconds)
    return AppLifecycleManager(
        registry=registry,
        apps_dir=Path(config.apps_dir).expanduser(),
        git=GitClient(runner),
        shell=ShellRunner(runner),
        services=SystemdServiceManager(
            runner,
            unit_dir=Path(config.unit_dir).expanduser(),
            user=config.systemd_user,
        ),
        wanted_by=config.wanted_by,
    )


def create_app(
    config: Optional[AgentConfig] = None,
    lifecycle: Optional[AppLifecycleManager] = None,
    sampler: Optional[TelemetrySampler] = None,
) -> FastAPI:
    """
    Build the agent application.

    Args:
        config: process configuration (default: load_config() at startup)
        lifecycle: prebuilt lifecycle manager; its registry becomes the shared one
        sampler: telemetry source (default: psutil sampler)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Load configuration and registry once for all sessions"""
        cfg = config or load_config()

        if lifecycle is not None:
            manager = lifecycle
        else:
            registry = AppRegistry.load(cfg.resolved_registry_path)
            manager = build_lifecycle(cfg, registry)
            missing = missing_tools()
            if missing:
                logger.warning(f"Missing external tools: {', '.join(missing)}")

        app.state.config = cfg
        app.state.registry = manager.registry
        app.state.lifecycle = manager
        app.state.sampler = sampler or TelemetrySampler(cfg.sample_window_seconds)

        logger.info(f"Agent startup complete: {len(manager.registry)} app(s) registered")
        yield
        logger.info("Agent shutdown complete")

    app = FastAPI(title="SentryX Agent", lifespan=lifespan)

    app.include_router(health.router)
    app.include_router(apps.router)
    app.include_router(control.router)

    @app.get("/")
    def root():
        return {
            "service": "sentryx-agent",
            "message": "SentryX agent running; connect to /ws with the master key",
        }

    return app


app = create_app()
