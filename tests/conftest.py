"""Shared fixtures for the Mood Journal tests."""

import asyncio
import socket
import threading
import time

import httpx
import pytest
import uvicorn


@pytest.fixture
def live_server():
    """Run apps on real HTTP servers in background threads.

    Yields a callable that starts the given app on a free port and returns its
    base URL. Every started server is stopped when the test ends.
    """
    running: list[tuple[uvicorn.Server, threading.Thread]] = []

    def start(app) -> str:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        host, port = sock.getsockname()
        sock.close()
        base_url = f"http://{host}:{port}"

        config = uvicorn.Config(
            app=app,
            host=host,
            port=port,
            loop="asyncio",
            lifespan="on",
            log_level="warning",
            ws="none",  # Avoid importing deprecated websockets implementation
        )
        server = uvicorn.Server(config)
        thread = threading.Thread(
            target=lambda: asyncio.run(server.serve()), daemon=True
        )
        thread.start()
        running.append((server, thread))

        deadline = time.time() + 5.0
        while time.time() < deadline:
            try:
                if httpx.get(base_url + "/", timeout=0.2).status_code == 200:
                    return base_url
            except httpx.HTTPError:
                pass
            time.sleep(0.05)
        pytest.fail("Server did not start in time")

    yield start

    for server, thread in running:
        server.should_exit = True
        thread.join(timeout=2.0)
