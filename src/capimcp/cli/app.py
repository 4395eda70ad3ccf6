# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/cli/app.py
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from capimcp.config.loader import load_config
from capimcp.config.models import ServerConfig
from capimcp.context import AppContext, build_context
from capimcp.errors import CapiError, to_safe_dict
from capimcp.logging.log import init_logging

# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Cluster API lifecycle tools for agents")


def _load(config: Optional[Path]) -> ServerConfig:
    try:
        return load_config(config)
    except CapiError as exc:
        typer.secho(f"config error: {exc.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)


def _context(cfg: ServerConfig, *, debug: bool, connect: bool = True) -> AppContext:
    base_dir = Path(cfg.logging.dir).expanduser() if cfg.logging.dir else None
    _, run_id, _ = init_logging(
        base_dir=base_dir,
        verbose=debug,
        level=cfg.logging.level,
        to_file=cfg.logging.to_file,
    )
    return build_context(cfg, connect=connect, run_id=run_id)


def _parse_vars(items: List[str]) -> dict:
    """``--var key=value`` pairs; values are read as JSON when they parse, else kept as strings."""
    out = {}
    for item in items:
        if "=" not in item:
            raise typer.BadParameter(f"expected key=value, got {item!r}")
        key, raw = item.split("=", 1)
        try:
            out[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            out[key.strip()] = raw
    return out


def _emit(payload: dict) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def serve(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Server config YAML"),
    transport: Optional[str] = typer.Option(None, "--transport", help="stdio, http, sse or streamable-http"),
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Run the MCP tool server."""
    from capimcp.tools.server import run_server

    cfg = _load(config)
    overrides = {k: v for k, v in {"transport": transport, "host": host, "port": port}.items() if v is not None}
    if overrides:
        try:
            cfg = cfg.model_copy(update={"mcp": cfg.mcp.model_validate({**cfg.mcp.model_dump(), **overrides})})
        except ValueError as exc:
            raise typer.BadParameter(str(exc))

    ctx = _context(cfg, debug=debug)
    run_server(ctx)


@app.command()
def validate(
    cluster_name: str = typer.Argument(...),
    template: str = typer.Option(..., "--template", "-t"),
    kubernetes_version: str = typer.Option(..., "--kubernetes-version", "-k"),
    var: List[str] = typer.Option([], "--var", help="Cluster variable as key=value (repeatable)"),
    config: Optional[Path] = typer.Option(None, "--config", "-c"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Check a create request offline; exits 1 when it is invalid."""
    cfg = _load(config)
    ctx = _context(cfg, debug=debug, connect=False)
    out = ctx.service.validate_cluster_request(cluster_name, template, kubernetes_version, _parse_vars(var))
    _emit(out.model_dump())
    if not out.valid:
        raise typer.Exit(1)


@app.command()
def providers(
    config: Optional[Path] = typer.Option(None, "--config", "-c"),
    debug: bool = typer.Option(False, "--debug"),
):
    """List registered infrastructure providers."""
    cfg = _load(config)
    ctx = _context(cfg, debug=debug, connect=False)
    _emit(ctx.service.list_providers().model_dump())


@app.command()
def clusters(
    config: Optional[Path] = typer.Option(None, "--config", "-c"),
    debug: bool = typer.Option(False, "--debug"),
):
    """List clusters on the management cluster."""
    cfg = _load(config)
    ctx = _context(cfg, debug=debug)
    try:
        out = ctx.service.list_clusters()
    except CapiError as exc:
        _emit({"ok": False, "error": to_safe_dict(exc)})
        raise typer.Exit(1)
    _emit(out.model_dump())


@app.command()
def templates(
    config: Optional[Path] = typer.Option(None, "--config", "-c"),
    debug: bool = typer.Option(False, "--debug"),
):
    """List ClusterClass templates."""
    cfg = _load(config)
    ctx = _context(cfg, debug=debug)
    try:
        out = ctx.service.list_cluster_templates()
    except CapiError as exc:
        _emit({"ok": False, "error": to_safe_dict(exc)})
        raise typer.Exit(1)
    _emit(out.model_dump())


@app.command()
def health(
    config: Optional[Path] = typer.Option(None, "--config", "-c"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Check control-plane reachability; exits 1 when not ready."""
    cfg = _load(config)
    ctx = _context(cfg, debug=debug)
    out = ctx.service.health_check()
    _emit(out.model_dump())
    if not out.ready:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
