"""
Application entry points: build, plan and run a node tree.
"""

from __future__ import annotations

import logging
import queue
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext, suppress
from typing import Any

from .compiler import compile_graph
from .conditions import ConfigResolver
from .model.bindings import CompiledGraph
from .nodes import collect_nodes
from .plan import render_plan
from .runtime.container import Container

logger = logging.getLogger(__name__)

DEFAULT_STOP_TIMEOUT = 15.0


class RestartSignal:
    """
    Single-slot request to stop and rebuild a running application.

    Injectable while ``App.run`` is active. Triggering an already pending
    signal does nothing.
    """

    def __init__(self) -> None:
        self._slot: queue.Queue[None] = queue.Queue(maxsize=1)
        self._wake: threading.Event | None = None

    def bind(self, wake: threading.Event) -> None:
        self._wake = wake

    def trigger(self) -> None:
        with suppress(queue.Full):
            self._slot.put_nowait(None)
        if self._wake is not None:
            self._wake.set()

    def consume(self) -> bool:
        """Take the pending request, if any."""
        try:
            self._slot.get_nowait()
        except queue.Empty:
            return False
        return True


@contextmanager
def _shutdown_on_signals(container: Container) -> Iterator[None]:
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum: int, frame: Any) -> None:
        logger.info("received %s, shutting down", signal.Signals(signum).name)
        container.shutdown()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


class App:
    """
    A declared application.

    Example:
        app = App(
            Provide(Database),
            Module("api", Provide(Server), Invoke(serve)),
            config_resolver=config_resolver_from(settings),
        )
        print(app.plan())
        app.run()
    """

    def __init__(self, *nodes: Any, config_resolver: ConfigResolver | None = None):
        self.nodes = collect_nodes(nodes)
        self.config_resolver = config_resolver

    def build(self) -> CompiledGraph:
        """
        Compile the tree into a flat binding list.

        Raises:
            NodewireError: The first declaration error found.
        """
        return compile_graph(self.nodes, self.config_resolver)

    def plan(self) -> str:
        """Render the tree as an indented plan."""
        return render_plan(self.nodes, self.config_resolver)

    def run(self, *, stop_timeout: float = DEFAULT_STOP_TIMEOUT, handle_signals: bool = True) -> None:
        """
        Build and start the application, then block.

        The application is stopped when it shuts down (``Container.shutdown()``
        or SIGINT/SIGTERM) and rebuilt from scratch when a ``RestartSignal`` is
        triggered. A shutdown wins over a restart requested at the same time.
        """
        restart = RestartSignal()
        while True:
            graph = self.build()
            container = Container(graph, builtins=[restart])
            wake = threading.Event()
            restart.bind(wake)
            container.on_done(wake.set)
            with _shutdown_on_signals(container) if handle_signals else nullcontext():
                container.start()
                try:
                    wake.wait()
                finally:
                    container.stop(stop_timeout)
            if container.done.is_set() or not restart.consume():
                return
            logger.info("restarting application")


def build(*nodes: Any, config_resolver: ConfigResolver | None = None) -> CompiledGraph:
    return App(*nodes, config_resolver=config_resolver).build()


def plan(*nodes: Any, config_resolver: ConfigResolver | None = None) -> str:
    return App(*nodes, config_resolver=config_resolver).plan()
