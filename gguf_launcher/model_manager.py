"""
Model management utilities for the GGUF launcher.

This module resolves where a model lives on disk and orchestrates its
download from HuggingFace Hub. A quantization is either published as a
single ``<model>-<quant>.gguf`` file or as numbered shards inside a
``<quant>/`` directory; which one is decided by the static table in
gguf_launcher.quants, not by inspecting the repository.

Downloads run under a bounded exponential backoff. After a successful
download the resolved path (the file itself or the first shard) is written
back to config.env as MODEL_PATH.
"""

import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from gguf_launcher.config import Settings, update_config_value
from gguf_launcher.errors import DownloadError
from gguf_launcher.quants import is_single_file
from gguf_launcher.retry import RetryError, RetryPolicy, retry_call
from gguf_launcher.sources_hf import download_hf

FIRST_SHARD_GLOB = "*-00001-of-*.gguf"
SHARD_GLOB = "*-of-*.gguf"


@dataclass(frozen=True)
class DownloadDescriptor:
    """What to fetch and where to put it."""

    repo_id: str
    quant: str
    dest_dir: Path
    sharded: bool
    filename: Optional[str] = None

    @property
    def pattern(self) -> str:
        """Exact file name for single files, directory pattern for shards."""
        if self.sharded:
            return f"{self.quant}/*"
        return self.filename

    @property
    def expected_path(self) -> str:
        """Where the file (or first shard, as a glob) should land."""
        if self.sharded:
            return str(self.dest_dir / self.quant / FIRST_SHARD_GLOB)
        return str(self.dest_dir / self.filename)


@dataclass(frozen=True)
class DownloadResult:
    path: Path
    shard_count: int = 0
    skipped: bool = False


def single_file_name(settings: Settings) -> str:
    """
    File name of a single-file quantization.

    Args:
        settings: Loaded settings

    Returns:
        MODEL_FILE if set, otherwise "<MODEL_NAME>-<MODEL_QUANT>.gguf"
    """
    if settings.model_file:
        return settings.model_file
    return f"{settings.model_name}-{settings.model_quant}.gguf"


def build_descriptor(settings: Settings) -> DownloadDescriptor:
    """
    Compute the download descriptor for the configured model.

    An explicit MODEL_FILE always means a single-file download.

    Args:
        settings: Loaded settings

    Returns:
        DownloadDescriptor for the configured repository and quantization
    """
    sharded = not settings.model_file and not is_single_file(settings.model_quant)
    return DownloadDescriptor(
        repo_id=settings.hf_repo,
        quant=settings.model_quant,
        dest_dir=Path(settings.models_dir),
        sharded=sharded,
        filename=None if sharded else single_file_name(settings),
    )


def find_shards(dest_dir: Path, quant: str) -> List[Path]:
    """
    List shard files of a quantization, sorted by shard number.

    Args:
        dest_dir: Models directory
        quant: Quantization label (also the shard subdirectory name)

    Returns:
        Sorted list of shard paths, empty if none exist
    """
    shard_dir = Path(dest_dir) / quant
    if not shard_dir.is_dir():
        return []
    return sorted(shard_dir.glob(SHARD_GLOB))


def first_shard(dest_dir: Path, quant: str) -> Optional[Path]:
    shard_dir = Path(dest_dir) / quant
    if not shard_dir.is_dir():
        return None
    matches = sorted(shard_dir.glob(FIRST_SHARD_GLOB))
    return matches[0] if matches else None


def existing_model(descriptor: DownloadDescriptor) -> Optional[Path]:
    """
    Return the already-downloaded file or first shard, if present.

    Args:
        descriptor: Download descriptor

    Returns:
        Path of the existing file / first shard, or None
    """
    if descriptor.sharded:
        return first_shard(descriptor.dest_dir, descriptor.quant)
    path = descriptor.dest_dir / descriptor.filename
    return path if path.is_file() else None


def resolve_model_path(settings: Settings) -> Path:
    """
    Resolve the model file passed to llama.cpp.

    MODEL_PATH wins when set. Otherwise the path is derived from the
    quantization: the single file, or the first shard found on disk. When no
    shard exists yet the expected first-shard location is returned so error
    messages can point at it.

    Args:
        settings: Loaded settings

    Returns:
        Path to the model file (may not exist)
    """
    if settings.model_path:
        return Path(settings.model_path)
    descriptor = build_descriptor(settings)
    found = existing_model(descriptor)
    if found:
        return found
    return Path(descriptor.expected_path)


def _locate_single_file(descriptor: DownloadDescriptor) -> Path:
    """
    Find a downloaded single file, moving it into place if needed.

    Raises:
        DownloadError: If the file did not land anywhere under dest_dir
    """
    expected = descriptor.dest_dir / descriptor.filename
    if expected.is_file():
        return expected

    # The client may have put the file in a subdirectory
    name = Path(descriptor.filename).name
    for candidate in descriptor.dest_dir.rglob(name):
        if candidate.is_file():
            expected.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(candidate), str(expected))
            print(f"Moved {candidate} to {expected}")
            return expected

    raise DownloadError(
        "Download may have failed - model file not found",
        f"Expected {expected}",
    )


def verify_download(descriptor: DownloadDescriptor) -> DownloadResult:
    """
    Check that the downloaded files are in place.

    Args:
        descriptor: Download descriptor

    Returns:
        DownloadResult with the model path and, for shards, the shard count

    Raises:
        DownloadError: If no file or shard landed at the destination
    """
    if not descriptor.sharded:
        return DownloadResult(path=_locate_single_file(descriptor))

    shards = find_shards(descriptor.dest_dir, descriptor.quant)
    first = first_shard(descriptor.dest_dir, descriptor.quant)
    if not shards or first is None:
        raise DownloadError(
            f"Download may have failed - no shards found in {descriptor.dest_dir / descriptor.quant}",
            f"Expected files matching {descriptor.expected_path}",
        )
    print(f"Found {len(shards)} shard file(s) in {descriptor.dest_dir / descriptor.quant}")
    return DownloadResult(path=first, shard_count=len(shards))


def remediation_hint(settings: Settings) -> str:
    return "\n".join(
        [
            "The GGUF repository or quantization may not exist. To fix this, edit config.env:",
            "  1. Update HF_REPO to a valid GGUF repository",
            "  2. Update MODEL_QUANT (or MODEL_FILE) to match an available file",
            "  3. Re-run: gguf-launcher download",
            "Find repositories at https://huggingface.co/models?search=gguf",
            "and check the 'Files' tab for available quantizations",
            "(e.g. https://huggingface.co/unsloth, https://huggingface.co/bartowski).",
            f"Current config: HF_REPO={settings.hf_repo} MODEL_QUANT={settings.model_quant}",
        ]
    )


def download_model(
    settings: Settings,
    config_path: Union[str, Path, None] = None,
    confirm: Optional[Callable[[str], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DownloadResult:
    """
    Download the configured model with retries and record its path.

    Args:
        settings: Loaded settings
        config_path: config.env to update with MODEL_PATH
        confirm: Asked whether to re-download when the model already exists;
            without it an existing model is kept
        sleep: Sleep function used between attempts

    Returns:
        DownloadResult describing the model on disk

    Raises:
        DownloadError: If all attempts fail or the files are missing afterwards
    """
    descriptor = build_descriptor(settings)
    descriptor.dest_dir.mkdir(parents=True, exist_ok=True)

    print(f"Repository:  {descriptor.repo_id}")
    print(f"Quantization: {descriptor.quant} ({'sharded' if descriptor.sharded else 'single file'})")
    print(f"Pattern:     {descriptor.pattern}")
    print(f"Destination: {descriptor.dest_dir}")

    existing = existing_model(descriptor)
    force = False
    if existing:
        print(f"Model already exists: {existing}")
        if not (confirm and confirm("Re-download?")):
            print("Using existing model")
            result = verify_download(descriptor)
            update_config_value(config_path, "MODEL_PATH", str(result.path.resolve()))
            return DownloadResult(path=result.path, shard_count=result.shard_count, skipped=True)
        force = True

    policy = RetryPolicy(
        max_attempts=settings.download_max_retries,
        initial_delay=settings.download_retry_delay,
    )

    def _fetch():
        if descriptor.sharded:
            return download_hf(
                repo_id=descriptor.repo_id,
                dest_dir=descriptor.dest_dir,
                token=settings.hf_token,
                allow_patterns=[descriptor.pattern],
                timeout=settings.download_timeout,
                force_download=force,
            )
        return download_hf(
            repo_id=descriptor.repo_id,
            dest_dir=descriptor.dest_dir,
            token=settings.hf_token,
            filename=descriptor.filename,
            timeout=settings.download_timeout,
            force_download=force,
        )

    def _report(attempt: int, error: BaseException, next_delay: Optional[float]) -> None:
        if next_delay is None:
            print(f"Attempt {attempt}/{policy.max_attempts} failed, giving up")
        else:
            print(f"Attempt {attempt}/{policy.max_attempts} failed, retrying in {next_delay:g}s")

    try:
        retry_call(_fetch, policy, sleep=sleep, on_failure=_report)
    except RetryError as e:
        raise DownloadError(
            f"Download failed after {e.attempts} attempt(s): {e.last_error}",
            remediation_hint(settings),
        ) from e

    result = verify_download(descriptor)
    update_config_value(config_path, "MODEL_PATH", str(result.path.resolve()))
    print(f"Updated config with MODEL_PATH={result.path.resolve()}")
    return result


def list_local_models(models_dir: Path) -> List[Path]:
    """
    List downloaded GGUF files, including shards in subdirectories.

    Args:
        models_dir: Models directory

    Returns:
        Sorted list of .gguf paths
    """
    models_dir = Path(models_dir)
    if not models_dir.is_dir():
        return []
    return sorted(p for p in models_dir.rglob("*.gguf") if p.is_file())
