"""Command-line interface router for craft-reconciler."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from collections.abc import Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from craft_reconciler.backend.base import load_backend
from craft_reconciler.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from craft_reconciler.constants import DEFAULT_BACKEND_FACTORY
from craft_reconciler.control_plane import (
    RecipeCatalog,
    Reconciler,
    ReconcilerSettings,
    UnknownRecipeError,
)
from craft_reconciler.domain import ids
from craft_reconciler.domain.models import Recipe, Status
from craft_reconciler.observability.logging import setup_logging, shutdown_logging
from craft_reconciler.persistence import CatalogStore
from craft_reconciler.ui.render import CLIRenderer, create_renderer


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="craftrec",
        description=(
            "craft-reconciler: keep a crafting network stocked to target levels.\n\n"
            "Common workflows:\n"
            "  craftrec run                 Reconcile continuously until interrupted\n"
            "  craftrec run --once          Run a single full cycle\n"
            "  craftrec status              Show stock levels and errors\n"
            "  craftrec catalog set KEY 64  Set the wanted level of a recipe\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to reconciler TOML config (default: ./reconciler.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Reconcile the catalog against the crafting network",
        description=(
            "Load the catalog, connect to the crafting network, and run full and\n"
            "lightweight cycles on their configured intervals until interrupted.\n"
            "SIGHUP requests an immediate full cycle with recipe learning;\n"
            "SIGUSR1 requests an immediate check of in-flight jobs.\n\n"
            "Examples:\n"
            "  craftrec run\n"
            "  craftrec run --once --json\n"
            "  craftrec run --simulate --profile greedy\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument(
        "--once", action="store_true", help="Run one full cycle, print status, and exit."
    )
    run_parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use the bundled simulated network instead of the configured backend.",
    )
    learn_group = run_parser.add_mutually_exclusive_group()
    learn_group.add_argument(
        "--learn",
        dest="learn",
        action="store_const",
        const=True,
        default=None,
        help="Learn new craftable items on the first cycle.",
    )
    learn_group.add_argument(
        "--no-learn",
        dest="learn",
        action="store_const",
        const=False,
        help="Do not learn new items on the first cycle.",
    )
    run_parser.add_argument("--json", action="store_true", help="Emit JSON output (--once).")
    run_parser.set_defaults(handler=_cmd_run)

    # status --------------------------------------------------------------
    status_parser = subparsers.add_parser(
        "status",
        parents=[common],
        help="Match the catalog against current inventory without crafting",
    )
    status_parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use the bundled simulated network instead of the configured backend.",
    )
    status_parser.add_argument("--json", action="store_true", help="Emit JSON output.")
    status_parser.set_defaults(handler=_cmd_status)

    # catalog -------------------------------------------------------------
    catalog_parser = subparsers.add_parser(
        "catalog",
        help="Inspect or edit the persisted recipe catalog",
    )
    catalog_sub = catalog_parser.add_subparsers(dest="catalog_command", required=True)

    list_parser = catalog_sub.add_parser("list", parents=[common], help="List recipes")
    list_parser.add_argument(
        "--filter", dest="filter_text", default="", help="Case-insensitive label filter."
    )
    list_parser.add_argument("--json", action="store_true", help="Emit JSON output.")
    list_parser.set_defaults(handler=_cmd_catalog_list)

    set_parser = catalog_sub.add_parser("set", parents=[common], help="Set a wanted level")
    set_parser.add_argument("key", help="Recipe identity key, e.g. minecraft:piston:0")
    set_parser.add_argument("wanted", type=int, help="Desired stock level (>= 0).")
    set_parser.set_defaults(handler=_cmd_catalog_set)

    remove_parser = catalog_sub.add_parser("remove", parents=[common], help="Remove a recipe")
    remove_parser.add_argument("key", help="Recipe identity key.")
    remove_parser.set_defaults(handler=_cmd_catalog_remove)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the effective configuration",
    )
    config_parser.add_argument("--json", action="store_true", help="Emit JSON output.")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    session_id = ids.generate_session_id()
    setup_logging(_section(config, "observability"), session_id=session_id)
    try:
        reconciler = _build_reconciler(config, simulate=_flag(args, "simulate"))
        learn = getattr(args, "learn", None)
        if _flag(args, "once"):
            if learn is None:
                learn = reconciler.settings.learn_on_start
            status = asyncio.run(reconciler.run_full_cycle(learn=learn))
            _print_status(args, reconciler, status, command="run")
        else:
            asyncio.run(_serve(reconciler, initial_learn=learn))
    finally:
        shutdown_logging()
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    reconciler = _build_reconciler(config, simulate=_flag(args, "simulate"))
    status = reconciler.refresh(learn=False)
    _print_status(args, reconciler, status, command="status")
    return 0


def _cmd_catalog_list(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    store = _catalog_store(config)
    catalog = RecipeCatalog(store.load())
    recipes = catalog.find(_optional_str(getattr(args, "filter_text", None)) or "")

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "catalog list",
                "catalog": store.path.as_posix(),
                "recipes": [_recipe_payload(recipe) for recipe in recipes],
            }
        )
        return 0

    renderer = _get_renderer(args)
    if not recipes:
        renderer.text(f"No recipes in {store.path}")
        return 0
    renderer.table(
        ("KEY", "LABEL", "WANTED"),
        [(recipe.key, recipe.label, str(recipe.wanted)) for recipe in recipes],
    )
    return 0


def _cmd_catalog_set(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    store = _catalog_store(config)
    catalog = RecipeCatalog(store.load())
    try:
        recipe = catalog.set_wanted(args.key, args.wanted)
    except UnknownRecipeError as exc:
        raise CLIError(str(exc), exit_code=1) from exc
    except ValueError as exc:
        raise CLIError(f"invalid wanted level: {exc}", exit_code=1) from exc
    store.save(catalog)
    _get_renderer(args).text(f"{recipe.label} ({recipe.key}): wanted {recipe.wanted}")
    return 0


def _cmd_catalog_remove(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    store = _catalog_store(config)
    catalog = RecipeCatalog(store.load())
    try:
        recipe = catalog.remove(args.key)
    except UnknownRecipeError as exc:
        raise CLIError(str(exc), exit_code=1) from exc
    store.save(catalog)
    _get_renderer(args).text(f"removed {recipe.label} ({recipe.key})")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _optional_str(getattr(args, "profile", None))

    if _flag(args, "json"):
        _emit_json({"command": "config", "active_profile": profile, "config": config})
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _serve(reconciler: Reconciler, *, initial_learn: bool | None) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(signum, reconciler.stop)
    sighup = getattr(signal, "SIGHUP", None)
    if sighup is not None:
        with suppress(NotImplementedError):
            loop.add_signal_handler(sighup, lambda: reconciler.request_full_cycle(learn=True))
    sigusr1 = getattr(signal, "SIGUSR1", None)
    if sigusr1 is not None:
        with suppress(NotImplementedError):
            loop.add_signal_handler(sigusr1, reconciler.request_poll)
    await reconciler.serve(initial_learn=initial_learn)


def _build_reconciler(config: Mapping[str, object], *, simulate: bool) -> Reconciler:
    backend = _section(config, "backend")
    if simulate:
        factory, options = DEFAULT_BACKEND_FACTORY, {}
    else:
        factory = str(backend.get("factory", DEFAULT_BACKEND_FACTORY))
        raw_options = backend.get("options", {})
        options = dict(raw_options) if isinstance(raw_options, Mapping) else {}

    network = load_backend(factory, options=options)
    return Reconciler.from_store(
        network,
        _catalog_store(config),
        settings=ReconcilerSettings.from_config(config),
    )


def _catalog_store(config: Mapping[str, object]) -> CatalogStore:
    raw = _section(config, "paths").get("catalog")
    if not isinstance(raw, str) or not raw.strip():
        raise CLIError("paths.catalog is not configured", exit_code=2)
    return CatalogStore(Path(raw))


def _print_status(
    args: argparse.Namespace,
    reconciler: Reconciler,
    status: Status,
    *,
    command: str,
) -> None:
    recipes = list(reconciler.catalog)
    if _flag(args, "json"):
        _emit_json(
            {
                "command": command,
                "status": status.to_dict(),
                "summary": status.describe(),
                "recipes": [_recipe_payload(recipe) for recipe in recipes],
            }
        )
        return

    renderer = _get_renderer(args)
    renderer.text(status.describe())
    if not recipes:
        return
    renderer.section("Recipes:")
    renderer.table(
        ("KEY", "LABEL", "STORED", "WANTED", "STATE"),
        [
            (
                recipe.key,
                recipe.label,
                str(recipe.stored),
                str(recipe.wanted),
                _recipe_state(renderer, recipe),
            )
            for recipe in recipes
        ],
    )


def _recipe_state(renderer: CLIRenderer, recipe: Recipe) -> str:
    if recipe.error is not None:
        return renderer.error(recipe.error)
    if recipe.is_crafting:
        return "crafting"
    if recipe.stored < recipe.wanted:
        return "queued"
    return "ok"


def _recipe_payload(recipe: Recipe) -> dict[str, object]:
    return {
        "key": recipe.key,
        "label": recipe.label,
        "wanted": recipe.wanted,
        "stored": recipe.stored,
        "crafting": recipe.is_crafting,
        "error": recipe.error,
    }


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"))


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))

    try:
        return load_config(config_path, profile=profile)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _section(config: Mapping[str, object], name: str) -> Mapping[str, object]:
    value = config.get(name)
    return value if isinstance(value, Mapping) else {}


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


__all__ = ["CLIError", "build_parser", "run_cli"]
