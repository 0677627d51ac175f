"""
Pre-flight checks run before downloading or launching a model.

Each check raises a distinct LauncherError subclass with a remediation hint.
Callers run them in order (engine binary, download client, disk space,
model file) and stop at the first failure.
"""

import importlib.util
import shutil
import socket
from pathlib import Path
from typing import Optional

import psutil

from gguf_launcher.errors import (
    BinaryNotFoundError,
    DownloadClientError,
    InsufficientDiskSpaceError,
    ModelNotFoundError,
    PortInUseError,
)
from gguf_launcher.quants import required_disk_gb

GB = 1024**3


def find_binary(name: str) -> Optional[str]:
    """
    Find a llama.cpp binary in the system PATH.

    Args:
        name: Binary name (e.g. "llama-cli", "llama-server")

    Returns:
        Full path to the binary, or None if not found
    """
    return shutil.which(name)


def require_binary(name: str) -> str:
    """
    Resolve a llama.cpp binary or fail.

    Args:
        name: Binary name

    Returns:
        Full path to the binary

    Raises:
        BinaryNotFoundError: If the binary is not on PATH
    """
    path = find_binary(name)
    if not path:
        raise BinaryNotFoundError(
            f"{name} not found",
            "Run 'gguf-launcher setup' (or 'make setup') first to install llama.cpp",
        )
    return path


def require_download_client() -> None:
    """
    Check that huggingface_hub can be imported.

    Raises:
        DownloadClientError: If the package is missing
    """
    if importlib.util.find_spec("huggingface_hub") is None:
        raise DownloadClientError(
            "huggingface_hub not found",
            "Install it with 'pip install huggingface-hub' or run 'gguf-launcher setup'",
        )


def _existing_parent(path: Path) -> Path:
    path = Path(path).absolute()
    while not path.exists() and path != path.parent:
        path = path.parent
    return path


def free_disk_gb(path: Path) -> float:
    """
    Free disk space on the filesystem holding ``path``.

    Args:
        path: Directory to inspect; the nearest existing parent is used

    Returns:
        Free space in GB
    """
    return psutil.disk_usage(str(_existing_parent(path))).free / GB


def check_disk_space(path: Path, quant: str) -> float:
    """
    Verify there is room for the requested quantization.

    Args:
        path: Download destination
        quant: Quantization label used to pick the size tier

    Returns:
        Available space in GB

    Raises:
        InsufficientDiskSpaceError: If free space is below the tier requirement
    """
    available = free_disk_gb(path)
    required = required_disk_gb(quant)
    if available < required:
        raise InsufficientDiskSpaceError(
            f"Insufficient disk space: {available:.0f}GB available, ~{required}GB required for {quant}",
            available_gb=available,
            required_gb=required,
            hint="Use a smaller quantization in config.env, e.g. MODEL_QUANT=Q2_K",
        )
    return available


def require_model(path: Optional[Path]) -> Path:
    """
    Check that the model file (or first shard) exists.

    Args:
        path: Resolved model path

    Returns:
        The same path

    Raises:
        ModelNotFoundError: If the file does not exist
    """
    if path is None or not Path(path).is_file():
        raise ModelNotFoundError(
            f"Model not found: {path}",
            "Run 'gguf-launcher download' (or 'make download') first to download the model",
        )
    return Path(path)


def port_in_use(host: str, port: int, timeout: float = 0.5) -> bool:
    """
    Check whether something is already listening on host:port.

    Args:
        host: Interface the server will bind; wildcard addresses probe localhost
        port: TCP port
        timeout: Connect timeout in seconds

    Returns:
        True if a connection was accepted
    """
    probe = "127.0.0.1" if host in ("", "0.0.0.0", "::") else host
    try:
        with socket.create_connection((probe, port), timeout=timeout):
            return True
    except OSError:
        return False


def check_port_free(host: str, port: int) -> None:
    """
    Raises:
        PortInUseError: If another listener already holds the port
    """
    if port_in_use(host, port):
        raise PortInUseError(
            f"Port {port} is already in use",
            "Stop the existing server with 'gguf-launcher stop' or use --port to pick another port",
        )
