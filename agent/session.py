"""
Control Session

One authenticated WebSocket connection carrying operator commands inbound and
host telemetry outbound.

    CONNECTING -> AUTHENTICATING -> AUTHENTICATED -> ACTIVE -> CLOSED

Once ACTIVE, three tasks share the connection:
- command loop: the only reader; decodes frames and dispatches them
- telemetry loop: samples the host every interval
- writer: the only sender; drains the outbound queue both loops feed

When any of them ends (disconnect, send failure, idle timeout) the others are
cancelled and the socket is closed, so no loop outlives the connection.
"""
import asyncio
import enum
import hmac
import logging
from typing import Any, Optional

from fastapi import WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketState

from agent.config import AgentConfig
from agent.errors import AgentError, AuthError, ParseError
from agent.lifecycle import AppLifecycleManager
from agent.models import CommandResponse, decode_command
from agent.telemetry import TelemetrySampler

logger = logging.getLogger(__name__)

AUTH_SUCCESS = "Success"
AUTH_FAILURE = "!Invalid master key"

POLICY_VIOLATION = 1008
NORMAL_CLOSURE = 1000
OUTBOUND_QUEUE_SIZE = 64


class SessionState(str, enum.Enum):
    CONNECTING = "CONNECTING"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED = "AUTHENTICATED"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class ControlSession:
    """
    Per-connection state machine.
    """

    def __init__(
        self,
        websocket: WebSocket,
        config: AgentConfig,
        lifecycle: AppLifecycleManager,
        sampler: TelemetrySampler,
    ):
        """
        Args:
            websocket: accepted-on-run connection
            config: process configuration (master key, intervals, timeouts)
            lifecycle: shared lifecycle manager (and through it the shared registry)
            sampler: telemetry source
        """
        self.websocket = websocket
        self.config = config
        self.lifecycle = lifecycle
        self.sampler = sampler

        self.state = SessionState.CONNECTING
        self.authenticated = False
        self._outbound: "asyncio.Queue[str]" = asyncio.Queue(maxsize=OUTBOUND_QUEUE_SIZE)

    @property
    def peer(self) -> str:
        client = self.websocket.client
        return f"{client.host}:{client.port}" if client else "unknown"

    async def run(self) -> None:
        await self.websocket.accept()
        self.state = SessionState.AUTHENTICATING

        try:
            await self._authenticate()
        except AuthError as e:
            logger.warning(f"Session {self.peer}: {e.message}")
            await self._close(POLICY_VIOLATION)
            return
        except (WebSocketDisconnect, asyncio.TimeoutError):
            logger.info(f"Session {self.peer}: closed during handshake")
            await self._close(NORMAL_CLOSURE)
            return

        self.state = SessionState.ACTIVE
        logger.info(f"Session {self.peer}: authenticated")
        try:
            await self._run_loops()
        finally:
            await self._close(NORMAL_CLOSURE)
            logger.info(f"Session {self.peer}: closed")

    # ------------------------------------------------------------------
    # Handshake
    # ------------------------------------------------------------------

    async def _receive(self) -> dict:
        timeout = self.config.idle_timeout_seconds
        if timeout:
            return await asyncio.wait_for(self.websocket.receive(), timeout=timeout)
        return await self.websocket.receive()

    async def _authenticate(self) -> None:
        message = await self._receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", NORMAL_CLOSURE))

        key = message.get("text")
        expected = self.config.master_key.encode("utf-8")
        if key is None or not hmac.compare_digest(key.encode("utf-8"), expected):
            await self.websocket.send_text(AUTH_FAILURE)
            raise AuthError("Invalid master key")

        self.authenticated = True
        self.state = SessionState.AUTHENTICATED
        await self.websocket.send_text(AUTH_SUCCESS)

    # ------------------------------------------------------------------
    # Active loops
    # ------------------------------------------------------------------

    async def _run_loops(self) -> None:
        tasks = [
            asyncio.create_task(self._command_loop(), name="command-loop"),
            asyncio.create_task(self._telemetry_loop(), name="telemetry-loop"),
            asyncio.create_task(self._writer_loop(), name="writer"),
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)

        for task, result in zip(tasks, results):
            if isinstance(result, WebSocketDisconnect):
                continue
            if isinstance(result, Exception):
                logger.error(f"Session {self.peer}: {task.get_name()} failed: {result!r}")

    async def _command_loop(self) -> None:
        while True:
            try:
                message = await self._receive()
            except asyncio.TimeoutError:
                logger.info(f"Session {self.peer}: idle for {self.config.idle_timeout_seconds}s, closing")
                return

            if message["type"] == "websocket.disconnect":
                return

            text = message.get("text")
            if text is None:
                response = self._failure(None, ParseError("Binary frames are not supported"))
            else:
                response = await self.handle_frame(text)
            await self._outbound.put(response.model_dump_json())

    async def handle_frame(self, text: str) -> CommandResponse:
        """Decode and execute one command frame; never raises for bad input"""
        try:
            command = decode_command(text)
        except ParseError as e:
            logger.warning(f"Session {self.peer}: {e.message}")
            return self._failure(None, e)
        except Exception as e:
            logger.warning(f"Session {self.peer}: undecodable frame: {e!r}")
            return self._failure(None, ParseError(f"Undecodable command frame: {type(e).__name__}"))

        logger.info(f"Session {self.peer}: command {command.kind}")
        try:
            data = await run_in_threadpool(self.lifecycle.execute, command)
        except AgentError as e:
            logger.warning(f"Session {self.peer}: {command.kind} failed: {e.message}")
            return self._failure(command.kind, e)
        except Exception as e:
            logger.error(f"Session {self.peer}: {command.kind} crashed: {e}", exc_info=True)
            return CommandResponse(command=command.kind, ok=False, error="InternalError", message=str(e))

        return CommandResponse(command=command.kind, ok=True, data=data)

    @staticmethod
    def _failure(command: Optional[str], error: AgentError) -> CommandResponse:
        data: Any = error.details
        return CommandResponse(command=command, ok=False, error=error.kind, message=error.message, data=data)

    async def _telemetry_loop(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self.config.telemetry_interval_seconds
        while True:
            next_tick = loop.time() + interval
            try:
                sample = await run_in_threadpool(self.sampler.sample)
            except Exception as e:
                logger.warning(f"Session {self.peer}: telemetry sample failed: {e}")
            else:
                await self._outbound.put(sample.model_dump_json())
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    async def _writer_loop(self) -> None:
        while True:
            frame = await self._outbound.get()
            await self.websocket.send_text(frame)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _close(self, code: int) -> None:
        if (
            self.websocket.application_state == WebSocketState.CONNECTED
            and self.websocket.client_state == WebSocketState.CONNECTED
        ):
            try:
                await self.websocket.close(code=code)
            except (RuntimeError, WebSocketDisconnect) as e:
                logger.debug(f"Session {self.peer}: close after disconnect: {e}")
        self.state = SessionState.CLOSED
