"""
Command line builders for the llama.cpp binaries.

Each builder turns Settings into an ordered argument list whose first
element is the binary. Memory flags are only ever added, never negated:
``--mmap`` appears when USE_MMAP is true and ``--mlock`` when USE_MLOCK is
true; a false value is expressed by leaving the flag out.
"""

from pathlib import Path
from typing import List, Optional

from gguf_launcher.config import Settings
from gguf_launcher.errors import UsageError

CLI_BINARY = "llama-cli"
SERVER_BINARY = "llama-server"

JSON_HINT = ". Always respond with valid JSON."


def _common_args(settings: Settings, model_path: Path) -> List[str]:
    args = [
        "--model",
        str(model_path),
        "--ctx-size",
        str(settings.context_size),
        "--batch-size",
        str(settings.batch_size),
    ]
    if settings.threads is not None:
        args += ["--threads", str(settings.threads)]
    args += ["--n-gpu-layers", str(settings.gpu_layers)]

    if settings.use_mmap:
        args.append("--mmap")
    if settings.use_mlock:
        args.append("--mlock")
    if settings.flash_attention:
        args += ["--flash-attn", "on"]
    return args


def _sampling_args(settings: Settings) -> List[str]:
    return [
        "--predict",
        str(settings.max_tokens),
        "--temp",
        str(settings.temperature),
        "--repeat-penalty",
        str(settings.repeat_penalty),
        "--top-k",
        str(settings.top_k),
        "--top-p",
        str(settings.top_p),
    ]


def build_chat_command(settings: Settings, model_path: Path, binary: str = CLI_BINARY) -> List[str]:
    """
    Build the interactive llama-cli command.

    Args:
        settings: Loaded settings
        model_path: Model file or first shard
        binary: Resolved llama-cli path

    Returns:
        Argument list
    """
    cmd = [binary] + _common_args(settings, model_path) + _sampling_args(settings)
    cmd += ["--interactive", "--conversation", "--color"]
    if settings.system_prompt:
        cmd += ["--system-prompt", settings.system_prompt]
    return cmd


def format_prompt(prompt: str, system_prompt: Optional[str] = None, json_mode: bool = False) -> str:
    """
    Wrap a prompt in the system/user/assistant template.

    Args:
        prompt: User prompt
        system_prompt: Optional system prompt
        json_mode: Append a JSON-only instruction to the system prompt

    Returns:
        The templated prompt
    """
    if json_mode:
        system_prompt = f"{system_prompt or ''}{JSON_HINT}"
    if system_prompt:
        return f"<|system|>\n{system_prompt}\n<|user|>\n{prompt}\n<|assistant|>"
    return f"<|user|>\n{prompt}\n<|assistant|>"


def build_query_command(
    settings: Settings,
    model_path: Path,
    prompt: str,
    json_mode: bool = False,
    binary: str = CLI_BINARY,
) -> List[str]:
    """
    Build a non-interactive, single prompt llama-cli command.

    Args:
        settings: Loaded settings
        model_path: Model file or first shard
        prompt: User prompt
        json_mode: Ask for JSON output
        binary: Resolved llama-cli path

    Returns:
        Argument list

    Raises:
        UsageError: If the prompt is empty
    """
    if not prompt or not prompt.strip():
        raise UsageError("No prompt provided", 'Usage: gguf-launcher query "your prompt here"')

    cmd = [binary] + _common_args(settings, model_path) + _sampling_args(settings)
    cmd.append("--no-display-prompt")
    cmd += ["--prompt", format_prompt(prompt, settings.system_prompt, json_mode)]
    return cmd


def build_server_command(settings: Settings, model_path: Path, binary: str = SERVER_BINARY) -> List[str]:
    """
    Build the llama-server command.

    Args:
        settings: Loaded settings
        model_path: Model file or first shard
        binary: Resolved llama-server path

    Returns:
        Argument list
    """
    cmd = [binary, "--host", settings.server_host, "--port", str(settings.server_port)]
    cmd += _common_args(settings, model_path)

    # q8_0 halves and q4_0 quarters KV cache memory compared to f16
    if settings.kv_cache_type_k:
        cmd += ["--cache-type-k", settings.kv_cache_type_k]
    if settings.kv_cache_type_v:
        cmd += ["--cache-type-v", settings.kv_cache_type_v]

    if settings.server_verbose:
        cmd.append("--verbose")
    if settings.chat_template:
        cmd += ["--chat-template", settings.chat_template]
    return cmd
