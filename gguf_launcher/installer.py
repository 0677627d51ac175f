"""
Dependency installation for the GGUF launcher.

llama.cpp is installed with Homebrew on macOS. On other platforms the
binaries have to be installed by hand (or built from source) and put on
PATH; setup only verifies them.
"""

import platform
import shutil
import subprocess
from pathlib import Path
from typing import List

from gguf_launcher.commands import CLI_BINARY, SERVER_BINARY
from gguf_launcher.config import CONFIG_TEMPLATE_FILE, DEFAULT_CONFIG_FILE
from gguf_launcher.console import print_step, print_success, print_warning
from gguf_launcher.errors import PrerequisiteError
from gguf_launcher.prerequisites import find_binary, require_download_client

HOMEBREW_INSTALL = (
    '/bin/bash -c "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"'
)


def is_macos() -> bool:
    return platform.system() == "Darwin"


def install_llama_cpp() -> None:
    """
    Install or upgrade llama.cpp with Homebrew.

    Raises:
        PrerequisiteError: If Homebrew is missing or not on macOS
        subprocess.CalledProcessError: If brew fails
    """
    if not is_macos():
        raise PrerequisiteError(
            "Automatic installation is only supported on macOS",
            "Build llama.cpp from https://github.com/ggml-org/llama.cpp and put "
            "llama-cli and llama-server on PATH",
        )

    brew = shutil.which("brew")
    if not brew:
        raise PrerequisiteError("Homebrew not found", f"Install it with:\n  {HOMEBREW_INSTALL}")

    listed = subprocess.run([brew, "list", "llama.cpp"], capture_output=True)
    if listed.returncode == 0:
        print_success("llama.cpp is already installed")
        print_step("Checking for updates...")
        upgraded = subprocess.run([brew, "upgrade", "llama.cpp"], capture_output=True)
        if upgraded.returncode == 0:
            print_success("llama.cpp is up to date")
        else:
            print_warning("brew upgrade llama.cpp failed, keeping the installed version")
    else:
        print_step("Installing llama.cpp...")
        subprocess.run([brew, "install", "llama.cpp"], check=True)
        print_success("llama.cpp installed successfully")


def verify_binaries() -> List[str]:
    """
    Report which llama.cpp binaries are on PATH.

    Returns:
        Names of the binaries that are missing
    """
    missing = []
    for name in (CLI_BINARY, SERVER_BINARY):
        path = find_binary(name)
        if path:
            print_success(f"{name} available: {path}")
        else:
            print_warning(f"{name} not found in PATH")
            missing.append(name)
    return missing


def ensure_config_file(config_path: Path = DEFAULT_CONFIG_FILE, template: Path = CONFIG_TEMPLATE_FILE) -> bool:
    """
    Create config.env from the template if it does not exist.

    Args:
        config_path: Target config file
        template: Template to copy

    Returns:
        True if a new file was created
    """
    config_path = Path(config_path)
    template = Path(template)
    if config_path.exists() or not template.is_file():
        return False
    shutil.copyfile(template, config_path)
    return True


def run_setup(models_dir: Path, config_path: Path, install: bool = True) -> List[str]:
    """
    Install llama.cpp, check the download client and prepare directories.

    Args:
        models_dir: Directory to create for downloaded models
        config_path: config.env location
        install: Try to install llama.cpp with Homebrew

    Returns:
        Names of llama.cpp binaries still missing afterwards

    Raises:
        DownloadClientError: If huggingface_hub is not importable
    """
    if install:
        print_step("Installing llama.cpp...")
        try:
            install_llama_cpp()
        except PrerequisiteError as e:
            print_warning(e.message)
            if e.hint:
                print_warning(e.hint)

    print_step("Verifying llama.cpp binaries...")
    missing = verify_binaries()

    print_step("Checking HuggingFace Hub client...")
    require_download_client()
    print_success("huggingface_hub available")

    print_step("Creating models directory...")
    Path(models_dir).mkdir(parents=True, exist_ok=True)
    print_success(f"Models directory ready: {models_dir}")

    if ensure_config_file(config_path):
        print_success(f"Created {config_path} - edit this file to customize settings")
    return missing
