"""Command line interface for the GGUF launcher.

Run larger-than-RAM GGUF models with llama.cpp:

    gguf-launcher setup      Install dependencies
    gguf-launcher download   Download the configured model
    gguf-launcher chat       Interactive chat
    gguf-launcher serve      OpenAI-compatible API server
"""

import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

import click

from gguf_launcher import __version__
from gguf_launcher.config import DEFAULT_CONFIG_FILE, Settings, load_settings
from gguf_launcher.console import print_banner, print_error, print_step, print_success, print_warning
from gguf_launcher.errors import InsufficientDiskSpaceError, LauncherError, UsageError
from gguf_launcher.info import config_summary, recommended_ram_limit, system_info
from gguf_launcher.installer import ensure_config_file, run_setup
from gguf_launcher.launcher import (
    INTERRUPTED,
    engine_version,
    run_chat,
    run_query,
    serve,
    server_health,
    stop_servers,
)
from gguf_launcher.model_manager import build_descriptor, download_model, list_local_models, resolve_model_path
from gguf_launcher.prerequisites import check_disk_space, require_download_client
from gguf_launcher.sources_hf import hf_logged_in_user, hf_login

SMOKE_TEST_PROMPT = "Say hello in exactly 5 words."

LICENSE_STEPS = """Gated models require accepting the publisher's license agreement. Please:
  1. Create an account at https://huggingface.co
  2. Accept the license on the original model page
  3. Create an access token at https://huggingface.co/settings/tokens
  4. Log in below, or set HF_TOKEN in config.env"""


class LauncherGroup(click.Group):
    """Click group that turns launcher errors into a diagnostic and exit status 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except LauncherError as e:
            print_error(e.message, e.hint)
            ctx.exit(1)
        except KeyboardInterrupt:
            click.echo("", err=True)
            ctx.exit(INTERRUPTED)


def _settings(ctx: click.Context, **overrides) -> Settings:
    settings = load_settings(ctx.obj["config_path"])
    return settings.with_overrides(**overrides)


@click.group(cls=LauncherGroup)
@click.version_option(version=__version__, prog_name="gguf-launcher")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_FILE,
    envvar="GGUF_CONFIG",
    show_default=True,
    help="Path to the KEY=VALUE configuration file",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path) -> None:
    """Larger-than-RAM LLM inference with llama.cpp and GGUF models."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.option("--no-install", is_flag=True, help="Only verify, do not run Homebrew")
@click.pass_context
def setup(ctx: click.Context, no_install: bool) -> None:
    """Install dependencies (llama.cpp, huggingface_hub)."""
    print_banner("GGUF Launcher - Setup")
    settings = _settings(ctx)
    missing = run_setup(settings.models_dir, ctx.obj["config_path"], install=not no_install)

    print_banner("Setup Complete!")
    if missing:
        print_warning(f"Missing binaries: {', '.join(missing)}")
    else:
        print_success("All dependencies installed")
    click.echo("")
    click.echo("Next steps:")
    click.echo("  1. Download a model:  gguf-launcher download")
    click.echo("  2. Start chatting:    gguf-launcher chat")
    click.echo("  3. Or start server:   gguf-launcher serve")
    click.echo("")
    print_warning(f"Recommended RAM_LIMIT for this machine: {recommended_ram_limit()}")


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Re-download without asking if the model exists")
@click.pass_context
def download(ctx: click.Context, yes: bool) -> None:
    """Download the configured GGUF model."""
    settings = _settings(ctx)
    print_banner("GGUF Model Downloader")

    print_step("Checking prerequisites...")
    require_download_client()
    print_success("HuggingFace Hub client available")

    try:
        available = check_disk_space(settings.models_dir, settings.model_quant)
        print_success(f"Disk space OK ({available:.0f}GB available)")
    except InsufficientDiskSpaceError as e:
        print_error(e.message, e.hint)
        if not click.confirm("Continue anyway?", default=False):
            ctx.exit(1)

    print_step("Checking HuggingFace authentication...")
    user = hf_logged_in_user(settings.hf_token)
    if user:
        print_success(f"Logged in as: {user}")
    else:
        print_warning("Not logged in to HuggingFace")
        click.echo(LICENSE_STEPS)
        if click.confirm("Log in now?", default=True):
            hf_login()
        else:
            print_warning("Continuing without authentication (public repositories only)")

    click.echo("")
    print_step("Downloading model (this may take a while for large models)...")

    def _confirm(question: str) -> bool:
        return yes or click.confirm(question, default=False)

    result = download_model(settings, ctx.obj["config_path"], confirm=_confirm)

    if result.skipped:
        print_success(f"Using existing model: {result.path}")
    else:
        print_success("Download complete!")
    click.echo(f"  File:   {result.path}")
    if result.shard_count:
        click.echo(f"  Shards: {result.shard_count}")

    print_banner("Download Complete!")
    click.echo("Next steps:")
    click.echo("  1. Start chatting:  gguf-launcher chat")
    click.echo("  2. Start server:    gguf-launcher serve")
    click.echo("")
    print_warning("First run may be slow as the model loads into memory")


def _cpu_only(cpu_only: bool) -> Optional[int]:
    if cpu_only:
        print_warning("Running in CPU-only mode", err=True)
        return 0
    return None


@cli.command()
@click.option("--cpu-only", is_flag=True, help="Force CPU-only mode (no GPU/Metal)")
@click.pass_context
def chat(ctx: click.Context, cpu_only: bool) -> None:
    """Start an interactive chat session."""
    settings = _settings(ctx, gpu_layers=_cpu_only(cpu_only))

    print_banner("Larger-than-RAM LLM Chat")
    click.echo(f"Model:       {resolve_model_path(settings).name}")
    click.echo(f"Context:     {settings.context_size} tokens")
    click.echo(f"GPU Layers:  {settings.gpu_layers}")
    click.echo(f"Memory Map:  {str(settings.use_mmap).lower()}")
    click.echo("")
    print_warning("First response may be slow while model loads")
    print_warning("Type 'quit' or press Ctrl+C to exit")
    click.echo("")

    ctx.exit(run_chat(settings))


@cli.command()
@click.argument("prompt", required=False)
@click.option("--system", "system_prompt", help="Override the system prompt")
@click.option("--max-tokens", type=int, help="Override MAX_TOKENS")
@click.option("--temp", "temperature", type=float, help="Override TEMPERATURE")
@click.option("--json", "json_mode", is_flag=True, help="Request JSON output")
@click.option("--cpu-only", is_flag=True, help="Force CPU-only mode (no GPU/Metal)")
@click.option("--verbose", is_flag=True, help="Show llama-cli log output")
@click.pass_context
def query(
    ctx: click.Context,
    prompt: Optional[str],
    system_prompt: Optional[str],
    max_tokens: Optional[int],
    temperature: Optional[float],
    json_mode: bool,
    cpu_only: bool,
    verbose: bool,
) -> None:
    """Run a single query. PROMPT may also be piped on stdin.

    Stdin is only read when PROMPT is not given, e.g.
    echo "What is 2+2?" | gguf-launcher query
    """
    text = prompt
    if not text and not sys.stdin.isatty():
        text = sys.stdin.read()
    text = (text or "").strip()
    if not text:
        raise UsageError("No prompt provided", 'Usage: gguf-launcher query "your prompt here"')

    settings = _settings(
        ctx,
        system_prompt=system_prompt,
        max_tokens=max_tokens,
        temperature=temperature,
        gpu_layers=_cpu_only(cpu_only),
    )
    print_warning("Running inference...", err=True)
    ctx.exit(run_query(settings, text, json_mode=json_mode, verbose=verbose))


@cli.command(name="serve")
@click.option("--host", help="Override SERVER_HOST")
@click.option("--port", type=int, help="Override SERVER_PORT")
@click.option("--verbose", is_flag=True, help="Enable verbose server logging")
@click.option("--cpu-only", is_flag=True, help="Force CPU-only mode (no GPU/Metal)")
@click.pass_context
def serve_command(ctx: click.Context, host: Optional[str], port: Optional[int], verbose: Optional[bool], cpu_only: bool) -> None:
    """Start the OpenAI-compatible API server."""
    settings = _settings(
        ctx,
        server_host=host,
        server_port=port,
        server_verbose=verbose or None,
        gpu_layers=_cpu_only(cpu_only),
    )
    url = f"http://{settings.server_host}:{settings.server_port}"

    print_banner("OpenAI-Compatible API Server")
    click.echo(f"Model:       {resolve_model_path(settings).name}")
    click.echo(f"Context:     {settings.context_size} tokens")
    click.echo(f"GPU Layers:  {settings.gpu_layers}")
    click.echo(f"KV Cache:    {settings.kv_cache_type_k or 'f16'} / {settings.kv_cache_type_v or 'f16'}")
    click.echo(f"Memory Map:  {str(settings.use_mmap).lower()}")
    click.echo(f"Server URL:  {url}")
    click.echo("")
    click.echo("API Endpoints:")
    click.echo(f"  • Chat:        POST {url}/v1/chat/completions")
    click.echo(f"  • Completions: POST {url}/v1/completions")
    click.echo(f"  • Health:      GET  {url}/health")
    click.echo("")
    print_warning("Press Ctrl+C to stop the server")
    click.echo("")

    ctx.exit(serve(settings))


@cli.command()
def stop() -> None:
    """Stop the running API server."""
    print_step("Stopping llama-server...")
    count = stop_servers()
    if count:
        print_success(f"Stopped {count} server process(es)")
    else:
        click.echo("No server running")


@cli.command()
@click.pass_context
def info(ctx: click.Context) -> None:
    """Show system information and model status."""
    settings = _settings(ctx)

    click.echo("")
    click.secho("System Information", fg="blue")
    for key, value in system_info().items():
        click.echo(f"{key}: {value}")

    click.echo("")
    click.secho("llama.cpp Status", fg="blue")
    click.echo(engine_version() or "Not installed - run 'gguf-launcher setup'")

    click.echo("")
    click.secho("Model Status", fg="blue")
    models = list_local_models(settings.models_dir)
    if models:
        for path in models:
            click.echo(f"{path} ({path.stat().st_size / 1024 ** 3:.1f}GB)")
    else:
        click.echo("No models downloaded - run 'gguf-launcher download'")
    descriptor = build_descriptor(settings)
    click.echo(f"Configured:  {descriptor.repo_id} [{descriptor.pattern}]")
    click.echo(f"Model path:  {resolve_model_path(settings)}")

    click.echo("")
    click.secho("Configuration", fg="blue")
    if not Path(ctx.obj["config_path"]).is_file():
        click.echo(f"No {ctx.obj['config_path']} found - using defaults")
    for key, value in config_summary(settings).items():
        click.echo(f"{key}: {value}")

    click.echo("")
    click.secho("Server Status", fg="blue")
    status = server_health(settings.server_host, settings.server_port)
    click.echo(f"Health: {status}" if status else "Not running")
    click.echo("")


@cli.command(name="test")
@click.pass_context
def smoke_test(ctx: click.Context) -> None:
    """Test inference with a simple prompt."""
    click.echo("Testing inference...")
    ctx.exit(run_query(_settings(ctx), SMOKE_TEST_PROMPT))


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clean(ctx: click.Context, yes: bool) -> None:
    """Remove downloaded models."""
    settings = _settings(ctx)
    models = list_local_models(settings.models_dir)
    if not models:
        click.echo("No models to remove")
        return

    print_warning("This will delete all downloaded models!")
    for path in models:
        click.echo(f"  {path}")
    if not yes and not click.confirm("Are you sure?", default=False):
        ctx.exit(1)

    for path in models:
        path.unlink()
        if path.parent != Path(settings.models_dir) and not any(path.parent.iterdir()):
            path.parent.rmdir()
    print_success("Cleaned models directory")


@cli.command()
@click.pass_context
def lint(ctx: click.Context) -> None:
    """Check the package sources for errors."""
    print_step("Checking sources...")
    ruff = shutil.which("ruff")
    if not ruff:
        click.echo("Install ruff: pip install ruff")
        return
    package_dir = Path(__file__).resolve().parent
    ctx.exit(subprocess.run([ruff, "check", str(package_dir)]).returncode)


@cli.command(name="config")
@click.pass_context
def edit_config(ctx: click.Context) -> None:
    """Open config.env in your editor."""
    config_path = Path(ctx.obj["config_path"])
    if ensure_config_file(config_path):
        print_success(f"Created {config_path} from template")
    elif not config_path.exists():
        config_path.touch()
    click.edit(filename=str(config_path))


def main() -> None:
    cli(prog_name="gguf-launcher")


if __name__ == "__main__":
    main()
