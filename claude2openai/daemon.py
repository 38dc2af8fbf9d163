"""
Service supervision and PID management for the claude2openai server.

The service runs the installed command with no arguments, restarts it whenever
it exits (keep-alive) and appends its stdout and stderr to one combined log
file. ``start``/``stop``/``status`` manage a detached supervisor through a
PID file.
"""

import logging
import os
import shutil
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import NamedTuple

import psutil

from .config import config
from .config_manager import DEFAULT_LOG_DIR
from .utils import format_uptime

logger = logging.getLogger(__name__)

# PID file location
PID_FILE = DEFAULT_LOG_DIR / "claude2openai.pid"
# Shutdown timeout in seconds
SHUTDOWN_TIMEOUT = 10
# Pause between keep-alive restarts
RESTART_DELAY = 1.0


class ProcessInfo(NamedTuple):
    """A live process as shown by `status`."""

    pid: int
    port: int | None
    uptime: str | None
    command: str


class ServiceDescriptor(NamedTuple):
    """How a supervisor runs the server and where its output goes."""

    run: list[str]
    keep_alive: bool
    log_path: Path
    error_log_path: Path


def get_run_command() -> list[str]:
    """Command that starts the server in the foreground."""
    executable = shutil.which("claude2openai")
    if executable:
        return [executable]
    return [sys.executable, "-m", "claude2openai"]


def get_service_descriptor(log_path: Path | None = None) -> ServiceDescriptor:
    """Service descriptor: no-argument run command, keep-alive, one combined log."""
    combined_log = Path(log_path or config.log_file_path).expanduser()
    return ServiceDescriptor(
        run=get_run_command(),
        keep_alive=True,
        log_path=combined_log,
        error_log_path=combined_log,
    )


def get_pid_file() -> Path:
    return PID_FILE


def read_pid() -> int | None:
    """Read PID from file.

    Returns:
        The recorded PID, or None if the file is missing or unreadable
    """
    pid_file = get_pid_file()
    if not pid_file.exists():
        return None

    try:
        pid_text = pid_file.read_text(encoding="utf-8").strip()
        return int(pid_text) if pid_text else None
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable PID file {pid_file}: {e}")
        return None


def write_pid(pid: int) -> None:
    pid_file = get_pid_file()
    try:
        pid_file.parent.mkdir(parents=True, exist_ok=True)
        pid_file.write_text(str(pid), encoding="utf-8")
    except OSError as e:
        logger.error(f"Cannot record PID in {pid_file}: {e}")
        raise


def remove_pid_file() -> None:
    pid_file = get_pid_file()
    try:
        if pid_file.exists():
            pid_file.unlink()
    except OSError as e:
        logger.warning(f"Cannot delete PID file {pid_file}: {e}")


def is_running(pid: int) -> bool:
    """Check if a process with the given PID is running."""
    try:
        # Signal 0 only checks liveness
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def get_process_info(pid: int) -> ProcessInfo | None:
    """Look up uptime, command line and listen port of ``pid``.

    Returns:
        ProcessInfo, or None once the process is gone
    """
    if not is_running(pid):
        return None

    try:
        process = psutil.Process(pid)
        uptime_str = format_uptime(time.time() - process.create_time())
        cmdline = process.cmdline()
    except (psutil.NoSuchProcess, psutil.ZombieProcess):
        return None
    except psutil.AccessDenied:
        return ProcessInfo(pid=pid, port=None, uptime=None, command=f"claude2openai (pid {pid})")

    port = None
    for i, arg in enumerate(cmdline):
        if arg == "--port" and i + 1 < len(cmdline):
            try:
                port = int(cmdline[i + 1])
            except ValueError:
                port = None
            break

    return ProcessInfo(pid=pid, port=port, uptime=uptime_str, command=" ".join(cmdline))


def kill_process(pid: int, timeout: int = SHUTDOWN_TIMEOUT) -> bool:
    """Send SIGTERM, then SIGKILL if ``pid`` outlives ``timeout`` seconds.

    Returns:
        True once the process is gone
    """
    try:
        os.kill(pid, signal.SIGTERM)

        for _ in range(timeout * 10):
            time.sleep(0.1)
            if not is_running(pid):
                return True

        logger.warning(f"PID {pid} ignored SIGTERM for {timeout}s, sending SIGKILL")
        os.kill(pid, signal.SIGKILL)
        time.sleep(0.5)
        return not is_running(pid)

    except ProcessLookupError as e:
        logger.debug(f"PID {pid} was already gone: {e}")
        return True
    except PermissionError as e:
        logger.error(f"Not allowed to stop process {pid}: {e}")
        return False


def clear_logs(log_path: Path) -> None:
    """Remove the combined log file if ``cleanup_logs_on_start`` is enabled."""
    if not config.cleanup_logs_on_start:
        logger.debug("cleanup_logs_on_start is off, keeping log")
        return

    try:
        if log_path.exists():
            log_path.unlink()
            logger.debug(f"Cleared log file: {log_path}")
    except OSError as e:
        logger.warning(f"Failed to clear log file {log_path}: {e}")


def supervise(
    descriptor: ServiceDescriptor,
    extra_args: list[str] | None = None,
    env: dict[str, str] | None = None,
    restart_delay: float = RESTART_DELAY,
    max_restarts: int | None = None,
) -> int:
    """Run the server and restart it whenever it exits.

    Stops restarting once SIGTERM or SIGINT is received, when the descriptor
    has keep_alive disabled, or after ``max_restarts`` restarts.

    Returns:
        Exit code of the last server process
    """
    cmd = [*descriptor.run, *(extra_args or [])]
    child: subprocess.Popen | None = None
    stopping = False

    def _handle_stop(signum, frame):
        nonlocal stopping
        stopping = True
        if child is not None and child.poll() is None:
            child.terminate()

    previous_handlers = {
        signum: signal.signal(signum, _handle_stop) for signum in (signal.SIGTERM, signal.SIGINT)
    }

    descriptor.log_path.parent.mkdir(parents=True, exist_ok=True)
    descriptor.error_log_path.parent.mkdir(parents=True, exist_ok=True)

    restarts = 0
    exit_code = 0
    try:
        while not stopping:
            with descriptor.log_path.open("a", encoding="utf-8") as out_log, \
                    descriptor.error_log_path.open("a", encoding="utf-8") as err_log:
                logger.info(f"Starting server: {' '.join(cmd)}")
                child = subprocess.Popen(cmd, stdout=out_log, stderr=err_log, env=env)
                exit_code = child.wait()

            if stopping:
                logger.info("Supervisor stopping")
                break
            if not descriptor.keep_alive:
                break
            if max_restarts is not None and restarts >= max_restarts:
                logger.error(f"Server exited with code {exit_code}, restart limit reached")
                break

            restarts += 1
            logger.warning(
                f"Server exited with code {exit_code}, restarting in {restart_delay}s (restart #{restarts})"
            )
            time.sleep(restart_delay)
            # A stop signal may land while waiting to restart
            if stopping:
                logger.info("Supervisor stopping")
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    return exit_code


def start_daemon(
    host: str,
    port: int,
    models_path: Path | None = None,
    config_path: Path | None = None,
) -> int:
    """Start the keep-alive supervisor as a background process.

    Returns:
        PID of the started supervisor

    Raises:
        RuntimeError: If the supervisor fails to start
    """
    descriptor = get_service_descriptor()
    descriptor.log_path.parent.mkdir(parents=True, exist_ok=True)
    clear_logs(descriptor.log_path)

    cmd = [sys.executable, "-m", "claude2openai"]
    if config_path:
        cmd += ["--config", str(config_path)]
    if models_path:
        cmd += ["--models", str(models_path)]
    cmd += ["supervise", "--host", str(host), "--port", str(port)]

    with descriptor.log_path.open("a", encoding="utf-8") as log_file:
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=log_file,
                env=os.environ.copy(),
                start_new_session=True,
            )
        except OSError as e:
            raise RuntimeError(f"Cannot launch supervisor: {e}") from e

    # Give it a moment to start
    time.sleep(0.5)
    if process.poll() is not None:
        raise RuntimeError(
            f"Daemon failed to start. Check {descriptor.log_path} for details."
        )

    write_pid(process.pid)
    logger.info(f"Supervisor running in background as PID {process.pid}")
    return process.pid


def stop_daemon() -> bool:
    """Stop the background supervisor recorded in the PID file.

    Returns:
        False only if a live supervisor could not be stopped
    """
    pid = read_pid()
    if pid is None:
        return True

    if not is_running(pid):
        # Stale PID file
        remove_pid_file()
        return True

    success = kill_process(pid)
    if success:
        remove_pid_file()
        logger.info(f"Supervisor PID {pid} stopped")

    return success


def get_daemon_status() -> ProcessInfo | None:
    """Status of the background supervisor, clearing a stale PID file.

    Returns:
        ProcessInfo, or None when nothing is running
    """
    pid = read_pid()
    if pid is None:
        return None

    info = get_process_info(pid)
    if info is None:
        remove_pid_file()

    return info
