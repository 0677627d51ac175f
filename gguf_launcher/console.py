"""Status line helpers shared by the CLI commands."""

from typing import Optional

import click


def print_step(message: str) -> None:
    click.echo(f"{click.style('==>', fg='blue')} {message}")


def print_success(message: str) -> None:
    click.echo(f"{click.style('✓', fg='green')} {message}")


def print_warning(message: str, err: bool = False) -> None:
    click.echo(f"{click.style('⚠', fg='yellow')} {message}", err=err)


def print_error(message: str, hint: Optional[str] = None) -> None:
    click.echo(f"{click.style('✗', fg='red')} {message}", err=True)
    if hint:
        for line in hint.splitlines():
            click.echo(f"  {line}", err=True)


def print_banner(title: str) -> None:
    click.echo("")
    click.echo("=" * 42)
    click.echo(f"  {title}")
    click.echo("=" * 42)
    click.echo("")
