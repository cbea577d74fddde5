"""
Shared terminal output for arenasettle commands.

Human output is a column of labelled rows with a final verdict bar;
--format json prints one document on stdout and nothing else.
"""

import json
import sys
from typing import Any

import click


BAR_HEAVY = "═" * 68
BAR_LIGHT = "─" * 68


def _style(code: str):
    return classmethod(lambda cls, text: cls.paint(code, text))


class _Color:
    """ANSI styling. Plain text off a TTY or under --no-color."""
    enabled: bool = True

    @classmethod
    def configure(cls, enabled: bool) -> None:
        cls.enabled = enabled and sys.stdout.isatty()

    @classmethod
    def paint(cls, code: str, text: str) -> str:
        if not cls.enabled:
            return text
        return f"\033[{code}m{text}\033[0m"

    green  = _style("32")
    red    = _style("31")
    yellow = _style("33")
    cyan   = _style("36")
    bold   = _style("1")
    dim    = _style("2")


def row_ok(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<18}')}  {_Color.green('✅')}  {value}"


def row_warn(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<18}')}  {_Color.yellow('⚠️ ')}  {value}"


def row_fail(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<18}')}  {_Color.red('❌')}  {value}"


def row_info(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<18}')}     {value}"


def header(title: str) -> None:
    click.echo()
    click.echo(_Color.bold(f"  {BAR_HEAVY}"))
    click.echo(_Color.bold(f"  ArenaSettle  ·  {title}"))
    click.echo(_Color.bold(f"  {BAR_HEAVY}"))
    click.echo()


def verdict(ok: bool, message: str) -> None:
    click.echo(f"  {BAR_LIGHT}")
    if ok:
        click.echo(_Color.green(_Color.bold(f"  ✅  {message}")))
    else:
        click.echo(_Color.red(_Color.bold(f"  ❌  {message}")))
    click.echo(f"  {BAR_LIGHT}")
    click.echo()


def echo_json(key: str, body: Any) -> None:
    click.echo(json.dumps({key: body}, indent=2, default=str))


def emit_error(command: str, msg: str, fmt: str) -> None:
    """Emit error in the requested format. Never raises."""
    if fmt == "json":
        click.echo(json.dumps({f"arenasettle_{command}": {"error": msg}}))
    else:
        click.echo(_Color.red(f"\n  ❌  ERROR: {msg}\n"), err=True)
