"""
Process launcher for llama.cpp.

Chat and query run llama-cli as a direct child that inherits the terminal,
and the child's exit code becomes ours. The server runs in the foreground
as well; it is stopped by finding llama-server processes by name, so no
PID file is kept.

Environment Variables:
    GGUF_HEALTH_TIMEOUT: Seconds to wait for the server health check (default: 2)
"""

import os
import subprocess
from pathlib import Path
from typing import List, Optional

import httpx
import psutil

from gguf_launcher.commands import (
    CLI_BINARY,
    SERVER_BINARY,
    build_chat_command,
    build_query_command,
    build_server_command,
)
from gguf_launcher.config import Settings
from gguf_launcher.console import print_warning
from gguf_launcher.model_manager import resolve_model_path
from gguf_launcher.prerequisites import check_port_free, find_binary, require_binary, require_model

HEALTH_TIMEOUT = float(os.getenv("GGUF_HEALTH_TIMEOUT", "2"))

# Exit status of a process interrupted by SIGINT
INTERRUPTED = 130


def run_foreground(cmd: List[str], quiet_stderr: bool = False) -> int:
    """
    Run a command attached to the current terminal.

    Args:
        cmd: Argument list
        quiet_stderr: Discard the child's stderr (llama.cpp logs loading
            progress there)

    Returns:
        The child's exit code
    """
    try:
        proc = subprocess.run(cmd, stderr=subprocess.DEVNULL if quiet_stderr else None)
    except KeyboardInterrupt:
        return INTERRUPTED
    return proc.returncode


def prepare_model(settings: Settings) -> Path:
    return require_model(resolve_model_path(settings))


def run_chat(settings: Settings) -> int:
    """
    Start an interactive chat session.

    Args:
        settings: Loaded settings

    Returns:
        llama-cli exit code

    Raises:
        BinaryNotFoundError: If llama-cli is missing
        ModelNotFoundError: If the model has not been downloaded
    """
    binary = require_binary(CLI_BINARY)
    model_path = prepare_model(settings)
    return run_foreground(build_chat_command(settings, model_path, binary=binary))


def run_query(settings: Settings, prompt: str, json_mode: bool = False, verbose: bool = False) -> int:
    """
    Run a single prompt and print only the answer on stdout.

    Args:
        settings: Loaded settings
        prompt: User prompt
        json_mode: Ask for JSON output
        verbose: Keep llama-cli's stderr

    Returns:
        llama-cli exit code

    Raises:
        UsageError: If the prompt is empty
        BinaryNotFoundError: If llama-cli is missing
        ModelNotFoundError: If the model has not been downloaded
    """
    binary = require_binary(CLI_BINARY)
    model_path = prepare_model(settings)
    cmd = build_query_command(settings, model_path, prompt, json_mode=json_mode, binary=binary)
    return run_foreground(cmd, quiet_stderr=not verbose)


def terminate_process_tree(pid: int, timeout: float = 10) -> bool:
    """
    Terminate a process and all of its children, killing it after a timeout.

    Args:
        pid: Parent process id
        timeout: Seconds to wait before sending SIGKILL

    Returns:
        False if the process had already exited

    Raises:
        psutil.AccessDenied: If the process belongs to another user
    """
    try:
        parent = psutil.Process(pid)
        for child in parent.children(recursive=True):
            try:
                child.terminate()
            except psutil.NoSuchProcess:
                pass
        parent.terminate()
        try:
            parent.wait(timeout=timeout)
        except psutil.TimeoutExpired:
            parent.kill()
    except psutil.NoSuchProcess:
        return False
    return True


def serve(settings: Settings) -> int:
    """
    Run llama-server in the foreground.

    The port is checked before the command is built; a bound port aborts
    without spawning anything.

    Args:
        settings: Loaded settings

    Returns:
        llama-server exit code

    Raises:
        BinaryNotFoundError: If llama-server is missing
        ModelNotFoundError: If the model has not been downloaded
        PortInUseError: If the port is already bound
    """
    binary = require_binary(SERVER_BINARY)
    model_path = prepare_model(settings)
    check_port_free(settings.server_host, settings.server_port)

    cmd = build_server_command(settings, model_path, binary=binary)
    proc = subprocess.Popen(cmd)
    try:
        return proc.wait()
    except KeyboardInterrupt:
        terminate_process_tree(proc.pid)
        return INTERRUPTED


def find_server_processes(name: str = SERVER_BINARY) -> List[psutil.Process]:
    """
    Find running processes by executable name or command line.

    Args:
        name: Process name to match

    Returns:
        Matching processes (excluding the current one)
    """
    found = []
    me = os.getpid()
    for proc in psutil.process_iter(["pid", "name", "cmdline"]):
        if proc.info["pid"] == me:
            continue
        cmdline = proc.info.get("cmdline") or []
        if proc.info.get("name") == name or (cmdline and os.path.basename(cmdline[0]) == name):
            found.append(proc)
    return found


def stop_servers(name: str = SERVER_BINARY, timeout: float = 10) -> int:
    """
    Stop every running llama-server.

    Args:
        name: Process name to match
        timeout: Seconds to wait before killing

    Returns:
        Number of processes actually stopped. Processes that cannot be
        signalled are reported and skipped.
    """
    stopped = 0
    for proc in find_server_processes(name):
        try:
            if terminate_process_tree(proc.pid, timeout=timeout):
                stopped += 1
        except psutil.AccessDenied:
            print_warning(f"Permission denied stopping {name} (pid {proc.pid}), skipping", err=True)
    return stopped


def server_health(host: str, port: int, timeout: float = HEALTH_TIMEOUT) -> Optional[str]:
    """
    Query the server's /health endpoint.

    Args:
        host: Server host
        port: Server port
        timeout: Request timeout in seconds

    Returns:
        The reported status (e.g. "ok"), or None if the server is unreachable
    """
    probe = "127.0.0.1" if host in ("", "0.0.0.0", "::") else host
    try:
        r = httpx.get(f"http://{probe}:{port}/health", timeout=timeout)
    except httpx.HTTPError:
        return None
    try:
        return r.json().get("status", str(r.status_code))
    except ValueError:
        return str(r.status_code)


def engine_version(binary: str = CLI_BINARY) -> Optional[str]:
    """
    Return the first line of ``<binary> --version``, or None if unavailable.
    """
    path = find_binary(binary)
    if not path:
        return None
    try:
        proc = subprocess.run([path, "--version"], capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.TimeoutExpired):
        return None
    lines = (proc.stdout + proc.stderr).strip().splitlines()
    return lines[0] if lines else None
