#!/usr/bin/env python3
"""
Hugging Face model download utilities.

This module provides functions for downloading GGUF models from Hugging Face
Hub, either as a single file or as a set of shards matched by a pattern.
It handles authentication lookup and provides progress information.
Retries are handled by the caller.

Environment Variables:
    HF_TOKEN: Hugging Face authentication token
    HUGGINGFACE_TOKEN: Alternative Hugging Face token environment variable
"""

import os
from pathlib import Path
from typing import List, Optional

from huggingface_hub import hf_hub_download, login, snapshot_download, whoami


def get_hf_token(token: Optional[str] = None) -> Optional[str]:
    """
    Resolve the Hugging Face token.

    Args:
        token: Explicit token, takes precedence over the environment

    Returns:
        The token, or None for anonymous access
    """
    return token or os.getenv("HF_TOKEN") or os.getenv("HUGGINGFACE_TOKEN")


def hf_logged_in_user(token: Optional[str] = None) -> Optional[str]:
    """
    Return the Hugging Face user name for the current credentials.

    Args:
        token: Optional token; falls back to the environment and the cached login

    Returns:
        The user name, or None if not authenticated
    """
    try:
        info = whoami(token=get_hf_token(token))
    except Exception:
        return None
    return info.get("name")


def hf_login(token: Optional[str] = None) -> None:
    """Run the interactive Hugging Face login (stores the token locally)."""
    login(token=token)


def download_hf(
    repo_id: str,
    dest_dir: Path,
    token: Optional[str] = None,
    filename: Optional[str] = None,
    allow_patterns: Optional[List[str]] = None,
    timeout: Optional[float] = None,
    force_download: bool = False,
) -> Path:
    """
    Download a model from Hugging Face Hub

    Args:
        repo_id: Hugging Face repository ID (e.g., "unsloth/Llama-4-Scout-17B-16E-Instruct-GGUF")
        dest_dir: Destination directory for the downloaded model
        token: Hugging Face token for gated/private models
        filename: Specific file to download (e.g., "model-Q2_K.gguf")
        allow_patterns: Glob patterns selecting files to download (e.g., ["Q8_0/*"])
        timeout: Seconds to wait for the Hub metadata request
        force_download: Re-download even if the files are already present

    Returns:
        Path of the downloaded file, or dest_dir for pattern downloads

    Raises:
        RuntimeError: If download fails
    """
    print(f"Downloading model from Hugging Face: {repo_id}")
    if filename:
        print(f"Downloading specific file: {filename}")
    elif allow_patterns:
        print(f"Downloading files matching: {', '.join(allow_patterns)}")
    print(f"Destination: {dest_dir}")

    token = get_hf_token(token)
    extra = {"etag_timeout": timeout} if timeout else {}
    if force_download:
        extra["force_download"] = True

    try:
        if filename:
            file_path = hf_hub_download(
                repo_id=repo_id,
                filename=filename,
                local_dir=str(dest_dir),
                token=token,
                **extra,
            )
            print(f"✅ Successfully downloaded {filename} from {repo_id} to {file_path}")
            return Path(file_path)

        snapshot_download(
            repo_id=repo_id,
            local_dir=str(dest_dir),
            allow_patterns=allow_patterns,
            token=token,
            **extra,
        )
        print(f"✅ Successfully downloaded {repo_id} to {dest_dir}")
        return Path(dest_dir)

    except Exception as e:
        print(f"❌ Failed to download {repo_id}: {e}")
        raise RuntimeError(f"Failed to download model {repo_id}: {e}") from e
