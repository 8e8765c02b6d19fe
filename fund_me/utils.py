"""Process, port, file locking and logging helpers shared by scripts and tests."""

import logging
import os
import random
import socket
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import coloredlogs
import psutil
from filelock import FileLock

logger = logging.getLogger(__name__)


def is_localhost_port_listening(port: int, host="localhost") -> bool:
    """Check if something already accepts TCP connections on a local port.

    Used to see when a spawned Anvil node is up, and later that it is gone.

    :return: True if there is a process occupying the port
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        return sock.connect_ex((host, port)) == 0
    finally:
        sock.close()


def find_free_port(min_port: int = 20_000, max_port: int = 40_000, max_attempt: int = 20) -> int:
    """Pick a random free localhost port for a development node.

    .. note ::

        Subject to race condition between the check and the bind.

    :param min_port:
        Lowest port to try

    :param max_port:
        Highest port to try

    :param max_attempt:
        Give up after this many occupied ports

    :return:
        Free port number
    """
    assert type(min_port) == int
    assert type(max_port) == int

    for attempt in range(max_attempt):
        port = random.randrange(start=min_port, stop=max_port)
        logger.debug("Trying port %d for the development node, attempt %d", port, attempt)
        if not is_localhost_port_listening(port, "127.0.0.1"):
            return port

    raise RuntimeError(f"Could not find a free port in range {min_port} - {max_port} after {max_attempt} attempts")


def shutdown_hard(
    process: psutil.Popen,
    log_level: Optional[int] = None,
    block=True,
    block_timeout=30,
    check_port: Optional[int] = None,
) -> tuple[bytes, bytes]:
    """Kill a node process and collect what it printed.

    :param process:
        Process to kill

    :param log_level:
        If set, replay the process output to Python logging at this level

    :param block:
        Wait until ``check_port`` is released

    :param block_timeout:
        Seconds to wait for the port to be freed

    :param check_port:
        The port the process was listening on

    :return:
        stdout, stderr as bytes
    """
    stdout = b""
    stderr = b""

    if process.poll() is None:
        process.kill()

    # Drain the pipes before wait(), wait() may close them
    for stream_name in ("stdout", "stderr"):
        stream = getattr(process, stream_name)
        if stream is None or stream.closed:
            continue
        data = b""
        for line in stream.readlines():
            data += line
            if log_level is not None:
                logger.log(log_level, "%s: %s", stream_name, line.decode("utf-8", errors="replace").strip())
        stream.close()
        if stream_name == "stdout":
            stdout = data
        else:
            stderr = data

    if process.poll() is None:
        process.wait()

    if block:
        assert check_port is not None, "Give check_port to block the execution"
        deadline = time.time() + block_timeout
        while time.time() < deadline:
            if not is_localhost_port_listening(check_port):
                return stdout, stderr
            time.sleep(0.1)

        raise AssertionError(f"Node did not release port {check_port} in {block_timeout} seconds, stdout is {len(stdout)} bytes, stderr is {len(stderr)} bytes")

    return stdout, stderr


def get_url_domain(url: str) -> str:
    """Redact URL so that only domain is displayed.

    RPC providers such as Infura and Alchemy put the API key in the path.
    """
    parsed = urlparse(url)
    if parsed.port in (80, 443, None):
        return parsed.hostname
    else:
        return f"{parsed.hostname}:{parsed.port}"


def setup_console_logging(
    default_log_level="warning",
    simplified_logging=False,
) -> logging.Logger:
    """Set up coloured log output for scripts.

    - ``LOG_LEVEL`` environment variable overrides ``default_log_level``

    - Tune down noisy dependency library logging

    :return:
        Root logger
    """
    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert numeric_level is not None, f"Unknown log level: {level}"

    if simplified_logging:
        fmt = "%(message)s"
        date_fmt = "%H:%M:%S"
    else:
        fmt = "%(asctime)s %(name)-30s %(message)s"
        date_fmt = "%Y-%m-%d %H:%M:%S"

    coloredlogs.install(level=numeric_level, fmt=fmt, datefmt=date_fmt)

    # Mute noise
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("web3.manager.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    logging.getLogger("eth.vm").setLevel(logging.WARNING)
    logging.getLogger("eth.chains").setLevel(logging.WARNING)
    return logging.getLogger()


@contextmanager
def wait_other_writers(path: Path | str, timeout: int = 120):
    """Hold an exclusive lock on a file while it is written.

    Deployment records may be written by a script and a test worker
    at the same time.

    Example:

    .. code-block:: python

        with wait_other_writers(record_path):
            record_path.write_text(record.to_json())

    :param path:
        Absolute path of the file being written

    :param timeout:
        Seconds to wait for the lock

    :raise filelock.Timeout:
        If another writer holds the lock for too long
    """
    if isinstance(path, str):
        path = Path(path)

    assert isinstance(path, Path), f"Not Path object: {path}"
    assert path.is_absolute(), f"Did not get an absolute path: {path}"

    os.makedirs(path.parent, exist_ok=True)

    lock_file = path.parent / (path.name + ".lock")
    lock = FileLock(lock_file, timeout=timeout)

    if lock.is_locked:
        logger.info("File %s locked for writing, waiting up to %d seconds", path, timeout)

    with lock:
        yield
