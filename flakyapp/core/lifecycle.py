"""Coordinated startup and graceful shutdown for the two listeners.

Each listener runs its own state machine::

    STARTING -> SERVING -> DRAINING -> SHUTTING_DOWN -> STOPPED

STARTING and SERVING can also move to the terminal CRASHED state.

All listeners share one ``StopSignal``.  When it fires the process reports
unready, every listener stops offering keep-alive, waits ``settle_delay`` so
load balancers can observe the readiness change, then closes its socket and
drains in-flight requests for at most ``stop_timeout`` seconds.  A drain that
overruns is logged and abandoned; it never blocks the other listener or the
process exit.  A bind failure, or an accept loop that ends on its own, is
fatal.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Literal

from aiohttp import web

from flakyapp.core.exceptions import ListenerBindError, ListenerCrashedError
from flakyapp.core.logging import logger as global_logger
from flakyapp.core.protocols.health_state import HealthState

Sleep = Callable[[float], Awaitable[None]]

DEFAULT_STOP_TIMEOUT: float = 10.0
DEFAULT_SETTLE_DELAY: float = 5.0


class ListenerState(str, Enum):
    """Lifecycle states of a single listener."""

    STARTING = "starting"
    SERVING = "serving"
    DRAINING = "draining"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
    CRASHED = "crashed"


_TRANSITIONS: dict[ListenerState, frozenset[ListenerState]] = {
    ListenerState.STARTING: frozenset({ListenerState.SERVING, ListenerState.CRASHED}),
    ListenerState.SERVING: frozenset({ListenerState.DRAINING, ListenerState.CRASHED}),
    ListenerState.DRAINING: frozenset({ListenerState.SHUTTING_DOWN}),
    ListenerState.SHUTTING_DOWN: frozenset({ListenerState.STOPPED}),
    ListenerState.STOPPED: frozenset(),
    ListenerState.CRASHED: frozenset(),
}


@dataclass(frozen=True)
class ServerDescriptor:
    """Everything needed to run one listener.

    Attributes:
        name: Short identifier used in logs and errors, e.g. ``"app"``.
        app: The aiohttp application answering requests.
        port: TCP port; 0 lets the OS pick one.
        host: Interface to bind.
        read_timeout: Seconds an idle keep-alive connection is kept open.
        write_timeout: Seconds a handler may take to produce its response,
            or ``None`` for no deadline.
        header_read_timeout: Tighter idle timeout, when set.
        gates_readiness: Whether draining this listener clears the health state.
    """

    name: str
    app: web.Application
    port: int
    host: str = "0.0.0.0"
    read_timeout: float = 15.0
    write_timeout: float | None = 15.0
    header_read_timeout: float | None = None
    gates_readiness: bool = False

    @property
    def idle_timeout(self) -> float:
        if self.header_read_timeout is None:
            return self.read_timeout
        return min(self.read_timeout, self.header_read_timeout)


def _is_idle(conn: web.RequestHandler) -> bool:
    """Whether a connection is parked between keep-alive requests."""
    waiter = conn._waiter
    return waiter is not None and not waiter.done()


@dataclass(frozen=True)
class ServeOutcome:
    """How a listener's accept loop finished."""

    intentional: bool
    error: BaseException | None = None


class StopSignal:
    """Single-shot broadcast that tells every listener to begin draining.

    ``fire()`` may be called any number of times; only the first call has an
    effect.  Waiters that registered before or after the fire are released.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def fire(self, reason: str = "stop requested") -> bool:
        """Release all waiters.

        Returns:
            True if this call fired the signal, False if it had already fired.
        """
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()


class ManagedServer:
    """Runs one ``ServerDescriptor`` through its lifecycle."""

    def __init__(
        self,
        descriptor: ServerDescriptor,
        *,
        health: HealthState,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize the managed server.

        Args:
            descriptor: What to serve and where.
            health: Readiness flag, cleared on drain if the descriptor gates it.
            stop_timeout: Upper bound on the graceful drain, in seconds.
            settle_delay: Pause between draining and closing the socket.
            sleep: Coroutine used for the settle delay.
        """
        self.descriptor = descriptor
        self.health = health
        self.stop_timeout = stop_timeout
        self.settle_delay = settle_delay
        self._sleep = sleep

        self.state = ListenerState.STARTING
        self.history: list[ListenerState] = [ListenerState.STARTING]

        self._runner: web.AppRunner | None = None
        self._server: asyncio.AbstractServer | None = None
        self._accept_task: asyncio.Task[ServeOutcome] | None = None
        self._cleanup_task: asyncio.Future[None] | None = None
        self._bound: tuple[str, int] | None = None
        self._draining = False
        self._shutdown_requested = False

        self.logger = global_logger.with_context(listener=descriptor.name)

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def draining(self) -> bool:
        return self._draining

    @property
    def address(self) -> tuple[str, int]:
        """The bound ``(host, port)``; the configured one before binding."""
        if self._bound is not None:
            return self._bound
        return self.descriptor.host, self.descriptor.port

    @property
    def port(self) -> int:
        return self.address[1]

    def _transition(self, new: ListenerState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"listener {self.name}: invalid transition {self.state.value} -> {new.value}"
            )
        self.logger.debug(f"{self.state.value} -> {new.value}")
        self.state = new
        self.history.append(new)

    # -- middlewares ---------------------------------------------------------

    def _keep_alive_middleware(self):
        @web.middleware
        async def keep_alive(request: web.Request, handler) -> web.StreamResponse:
            try:
                response = await handler(request)
            except web.HTTPException as exc:
                if not self._draining:
                    raise
                response = web.Response(
                    status=exc.status, reason=exc.reason, text=exc.text, headers=exc.headers
                )
            if self._draining:
                response.force_close()
            return response

        return keep_alive

    def _deadline_middleware(self, timeout: float):
        @web.middleware
        async def deadline(request: web.Request, handler) -> web.StreamResponse:
            try:
                return await asyncio.wait_for(handler(request), timeout=timeout)
            except asyncio.TimeoutError:
                # The client gets no response, only a closed connection.
                self.logger.warning(
                    f"{request.method} {request.path} exceeded {timeout}s, dropping connection"
                )
                request.protocol.force_close()
                raise web.HTTPServiceUnavailable()

        return deadline

    # -- STARTING -> SERVING -------------------------------------------------

    async def start(self) -> None:
        """Bind the socket and launch the accept loop without waiting on it.

        Raises:
            ListenerBindError: If the socket cannot be bound.
        """
        d = self.descriptor
        d.app.middlewares.append(self._keep_alive_middleware())
        if d.write_timeout is not None:
            d.app.middlewares.append(self._deadline_middleware(d.write_timeout))

        # aiohttp waits on in-flight handlers without a deadline; the bound is
        # applied around runner.cleanup() in _shutdown().
        self._runner = web.AppRunner(
            d.app,
            handle_signals=False,
            shutdown_timeout=None,
            keepalive_timeout=d.idle_timeout,
        )
        await self._runner.setup()

        loop = asyncio.get_running_loop()
        try:
            self._server = await loop.create_server(self._runner.server, host=d.host, port=d.port)
        except OSError as e:
            self._transition(ListenerState.CRASHED)
            await self._runner.cleanup()
            self.logger.error(f"Could not bind {d.host}:{d.port}: {e}")
            raise ListenerBindError(self.name, f"could not bind {d.host}:{d.port}: {e}") from e

        host, port = self._server.sockets[0].getsockname()[:2]
        self._bound = (host, port)

        self._accept_task = asyncio.create_task(self._accept_loop(), name=f"{self.name}-accept")
        self._transition(ListenerState.SERVING)
        self.logger.info(f"Starting server on {host}:{port}")

    async def _accept_loop(self) -> ServeOutcome:
        assert self._server is not None
        try:
            await self._server.serve_forever()
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if not self._shutdown_requested and task is not None and task.cancelling():
                raise
            return ServeOutcome(intentional=self._shutdown_requested)
        except Exception as e:
            return ServeOutcome(intentional=False, error=e)
        return ServeOutcome(intentional=self._shutdown_requested)

    # -- SERVING -> ... -> STOPPED -------------------------------------------

    async def serve(self, stop: StopSignal) -> ListenerState:
        """Serve until ``stop`` fires, then drain and shut down.

        Returns:
            The terminal state, always ``STOPPED`` on return.

        Raises:
            ListenerCrashedError: If the accept loop ends before ``stop`` fires.
        """
        if self._accept_task is None:
            raise RuntimeError(f"listener {self.name}: start() must complete before serve()")

        stop_wait = asyncio.create_task(stop.wait(), name=f"{self.name}-stop-wait")
        try:
            done, _ = await asyncio.wait(
                {stop_wait, self._accept_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not stop_wait.done():
                stop_wait.cancel()

        if self._accept_task in done:
            self._crashed()

        await self._drain()
        await self._settle()
        await self._shutdown()
        return self.state

    def _crashed(self) -> None:
        assert self._accept_task is not None
        error = None
        if not self._accept_task.cancelled():
            error = self._accept_task.result().error
        self._transition(ListenerState.CRASHED)
        detail = f": {error}" if error is not None else ""
        self.logger.error(f"Server on {self.address[0]}:{self.address[1]} stopped unexpectedly{detail}")
        raise ListenerCrashedError(self.name, f"accept loop ended unexpectedly{detail}") from error

    async def _drain(self) -> None:
        self._transition(ListenerState.DRAINING)
        if self.descriptor.gates_readiness:
            self.health.set_ready(False)
        self._draining = True
        assert self._runner is not None and self._runner.server is not None
        idle = 0
        for conn in list(self._runner.server.connections):
            if _is_idle(conn):
                conn.force_close()
                idle += 1
            else:
                conn.close()
        self.logger.info(f"Draining: keep-alive disabled, closed {idle} idle connection(s)")

    async def _settle(self) -> None:
        if self.settle_delay > 0:
            await self._sleep(self.settle_delay)
        self._transition(ListenerState.SHUTTING_DOWN)

    async def _shutdown(self) -> None:
        assert self._server is not None and self._runner is not None
        host, port = self.address
        self.logger.info(f"Shutting down server on {host}:{port} in {self.stop_timeout}s")

        self._shutdown_requested = True
        self._server.close()
        self._cleanup_task = asyncio.ensure_future(self._runner.cleanup())
        try:
            await asyncio.wait_for(asyncio.shield(self._cleanup_task), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            self.logger.error(
                f"Failed shutdown: requests still in flight after {self.stop_timeout}s"
            )
        except Exception as e:
            self.logger.error(f"Failed shutdown: {e}")
        else:
            self.logger.info(f"Server {host}:{port} stopped")
        self._transition(ListenerState.STOPPED)

    def abort(self) -> None:
        """Close the socket and stop the accept loop without draining."""
        self._shutdown_requested = True
        if self._server is not None:
            self._server.close()
        if self._accept_task is not None and not self._accept_task.done():
            self._accept_task.cancel()


class LifecycleManager:
    """Starts a set of listeners together and stops them together.

    The manager owns the ``StopSignal`` and drives the ``HealthState``: it
    reports ready once every listener is bound (or at startup with
    ``ready_when="startup"``) and unready the moment a stop is requested.
    A listener with ``gates_readiness`` also clears it when it starts draining.
    """

    def __init__(
        self,
        descriptors: Sequence[ServerDescriptor],
        *,
        health: HealthState,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        ready_when: Literal["listening", "startup"] = "listening",
        sleep: Sleep = asyncio.sleep,
    ):
        names = [d.name for d in descriptors]
        if len(set(names)) != len(names):
            raise ValueError(f"listener names must be unique: {names}")
        if ready_when not in ("listening", "startup"):
            raise ValueError(f"unknown ready_when: {ready_when!r}")

        self.health = health
        self.ready_when = ready_when
        self.stop_signal = StopSignal()
        self.servers = [
            ManagedServer(
                d,
                health=health,
                stop_timeout=stop_timeout,
                settle_delay=settle_delay,
                sleep=sleep,
            )
            for d in descriptors
        ]
        self._signals: list[signal.Signals] = []
        self.logger = global_logger.with_context(operation="lifecycle")

    @property
    def states(self) -> dict[str, ListenerState]:
        return {s.name: s.state for s in self.servers}

    def server(self, name: str) -> ManagedServer:
        for s in self.servers:
            if s.name == name:
                return s
        raise KeyError(name)

    # -- stop requests -------------------------------------------------------

    def request_stop(self, reason: str = "stop requested") -> bool:
        """Report unready, then fire the stop signal.

        Returns:
            True on the first call, False once the signal has already fired.
        """
        self.health.set_ready(False)
        fired = self.stop_signal.fire(reason)
        if fired:
            self.logger.info(f"About to stop servers: {reason}")
        else:
            self.logger.debug(f"Stop already in progress, ignoring: {reason}")
        return fired

    def install_signal_handlers(
        self, signals: Iterable[signal.Signals] = (signal.SIGINT, signal.SIGTERM)
    ) -> None:
        """Route termination signals to ``request_stop`` on the running loop."""
        loop = asyncio.get_running_loop()
        for sig in signals:
            loop.add_signal_handler(sig, self.request_stop, f"received {sig.name}")
            self._signals.append(sig)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        while self._signals:
            loop.remove_signal_handler(self._signals.pop())

    # -- run -----------------------------------------------------------------

    async def start(self) -> None:
        """Bind every listener concurrently.

        Raises:
            ListenerBindError: If any listener fails to bind; the others are
                closed before the error propagates.
        """
        if self.ready_when == "startup":
            self.health.set_ready(True)

        results = await asyncio.gather(*(s.start() for s in self.servers), return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            self.health.set_ready(False)
            for s in self.servers:
                s.abort()
            raise errors[0]

        if self.ready_when == "listening" and not self.stop_signal.fired:
            self.health.set_ready(True)
        self.logger.info("All servers started")

    async def wait(self) -> None:
        """Block until every listener is ``STOPPED``.

        Raises:
            ListenerCrashedError: If any listener crashes; the others are
                cancelled and their sockets closed first.
        """
        tasks = [
            asyncio.create_task(s.serve(self.stop_signal), name=f"{s.name}-supervisor")
            for s in self.servers
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for t in tasks:
                t.cancel()
            raise

        failed = [t for t in done if not t.cancelled() and t.exception() is not None]
        if failed:
            self.health.set_ready(False)
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for s in self.servers:
                s.abort()
            raise failed[0].exception()

    async def run(self) -> None:
        """Start all listeners, serve until stopped, and return once all have stopped."""
        await self.start()
        await self.wait()
        self.logger.info("All stopped.")
