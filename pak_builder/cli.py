"""Command‑line interface for Pak Builder.

This module exposes a suite of subcommands around the build
orchestrator.  Without a subcommand the interactive menu starts.
Run ``python -m pak_builder.cli --help`` for usage.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .builder import UnitBuilder
from .config_service import BuildConfig, ConfigService, normalize_path
from .errors import ConfigError, PakBuilderError, UnitsNotFoundError
from .menu import BuildMenu
from .orchestrator import (
    BatchCancelled,
    BatchFailed,
    BatchResult,
    BuildSession,
    Orchestrator,
    Selection,
    StartBuild,
)
from .reports import RunRecorder
from .repository import Unit, discover

logger = logging.getLogger(__name__)

EXIT_CANCELLED = 130


def _app_dir() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent.parent


def _parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pak-builder",
        description="Pak Builder – pack mod folders with retoc and install them",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--portable", "-p", action="store_true", help="Force portable mode")
    parser.add_argument("--config-dir", type=Path, default=None, help="Use this configuration directory")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("menu", help="Interactive mod picker (default)")
    sub.add_parser("list", help="List discovered mods")
    build = sub.add_parser("build", help="Build one, several or all mods")
    build.add_argument("--all", action="store_true", help="Build every mod, one after another")
    build.add_argument("mods", nargs="*", help="Mod folder names or menu numbers")
    setup = sub.add_parser("setup", help="Configure directories")
    setup.add_argument("--mods-dir", help="Folder holding the mod folders")
    setup.add_argument("--pak-dir", help="Game Paks folder receiving the build output")
    setup.add_argument("--retoc-dir", help="Folder containing the retoc executable")
    sub.add_parser("config", help="Show the resolved configuration")
    sub.add_parser("doctor", help="Check the configured tool and directories")
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _result_payload(result: BatchResult) -> Dict[str, Any]:
    return {
        "policy": result.policy.value,
        "succeeded": list(result.succeeded_units),
        "failed": {
            uid: result.outcomes[uid].failure_reason.value for uid in result.failed_units
        },
        "error": result.overall_error,
    }


def _resolve_selection(units: List[Unit], tokens: List[str], build_all: bool) -> Selection:
    if build_all:
        return Selection.all_units(units)
    by_id = {unit.id: unit for unit in units}
    chosen: List[Unit] = []
    for token in tokens:
        if token in by_id:
            unit = by_id[token]
        elif token.isdigit() and 1 <= int(token) <= len(units):
            unit = units[int(token) - 1]
        else:
            raise UnitsNotFoundError(f"Unknown mod: {token}")
        if unit not in chosen:
            chosen.append(unit)
    return Selection.of(chosen)


def _cmd_list(build_config: BuildConfig) -> int:
    units = discover(build_config.source_dir)
    for number, unit in enumerate(units, start=1):
        print(f"{number}. {unit.display_name}  ({unit.id})")
    return 0


def _cmd_build(args: argparse.Namespace, build_config: BuildConfig, recorder: RunRecorder) -> int:
    units = discover(build_config.source_dir)
    selection = _resolve_selection(units, args.mods, args.all)
    session = BuildSession(Orchestrator(UnitBuilder(build_config)))
    session.send(StartBuild(selection))
    event = None
    while event is None:
        try:
            event = session.wait(timeout=0.5)
        except KeyboardInterrupt:
            print("Cancelling...")
            session.cancel()
    if isinstance(event, BatchCancelled):
        recorder.record_cancelled(selection)
        print("Build cancelled")
        return EXIT_CANCELLED
    if isinstance(event, BatchFailed):
        print(f"Error: {event.error}")
        return 1
    result = event.result
    report_path = recorder.record(selection, result)
    payload = _result_payload(result)
    payload["report"] = str(report_path)
    _print_json(payload)
    return 0 if result.ok else 1


def _cmd_menu(build_config: BuildConfig, recorder: RunRecorder) -> int:
    session = BuildSession(Orchestrator(UnitBuilder(build_config)))
    menu = BuildMenu(session, lambda: discover(build_config.source_dir), recorder=recorder)
    return menu.loop()


def _prompt_dir(label: str, example: str, input_func: Callable[[str], str]) -> Path:
    print(label)
    print(f"  Example: {example}")
    return normalize_path(input_func("> "))


def _cmd_setup(args: argparse.Namespace, config_service: ConfigService, cfg: Dict[str, Any],
               portable: bool, input_func: Optional[Callable[[str], str]] = None) -> int:
    input_func = input_func or input
    if args.retoc_dir:
        cfg["retoc_dir"] = str(normalize_path(args.retoc_dir))
    if args.mods_dir:
        mods_dir = normalize_path(args.mods_dir)
    elif not cfg.get("mods_dir"):
        mods_dir = _prompt_dir("Modified UAsset/UEXP directory:", r"G:\Modding\Mods", input_func)
    else:
        mods_dir = Path(cfg["mods_dir"])
    if not mods_dir.is_dir():
        raise ConfigError(f"directory not found: {mods_dir}")
    cfg["mods_dir"] = str(mods_dir)

    if args.pak_dir:
        cfg["pak_dir"] = str(normalize_path(args.pak_dir))
    elif not cfg.get("pak_dir"):
        cfg["pak_dir"] = str(_prompt_dir(
            'UE game "Paks" directory:', r"E:\SteamLibrary\steamapps\common\Game\Content\Paks", input_func
        ))
    path = config_service.save_config(cfg, cli_portable=portable)
    print(f"Configuration saved to {path}")
    return 0


def _cmd_doctor(cfg: Dict[str, Any]) -> int:
    problems: List[str] = []
    checks: Dict[str, Any] = {}
    try:
        build_config = BuildConfig.from_dict(cfg)
    except ConfigError as exc:
        _print_json({"ok": False, "problems": [str(exc)]})
        return 1
    tool = build_config.tool_path
    checks["tool"] = str(tool)
    if not tool.is_file():
        problems.append(f"retoc executable not found: {tool}")
    elif os.name != "nt" and not os.access(tool, os.X_OK):
        problems.append(f"retoc executable is not executable: {tool}")
    checks["mods_dir"] = str(build_config.source_dir)
    try:
        checks["mods"] = len(discover(build_config.source_dir))
    except PakBuilderError as exc:
        problems.append(str(exc))
    checks["pak_dir"] = str(build_config.destination_dir)
    if not build_config.destination_dir.is_dir():
        problems.append(f"Paks directory does not exist yet: {build_config.destination_dir}")
    _print_json({"ok": not problems, "checks": checks, "problems": problems})
    return 0 if not problems else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_arguments(argv)
    _configure_logging(args.verbose)
    command = args.command or "menu"
    portable = bool(args.portable)
    config_service = ConfigService(app_dir=_app_dir(), config_dir_override=args.config_dir)
    cfg = config_service.load_config(cli_portable=portable)
    recorder = RunRecorder(config_service.get_logs_dir(cli_portable=portable))

    try:
        if command == "config":
            _print_json({"path": str(config_service.get_config_path(portable)), "config": cfg})
            return 0
        if command == "setup":
            return _cmd_setup(args, config_service, cfg, portable)
        if command == "doctor":
            return _cmd_doctor(cfg)
        build_config = BuildConfig.from_dict(cfg)
        if command == "list":
            return _cmd_list(build_config)
        if command == "build":
            return _cmd_build(args, build_config, recorder)
        return _cmd_menu(build_config, recorder)
    except PakBuilderError as exc:
        print(f"Error: {exc}")
        if isinstance(exc, ConfigError) and command != "setup":
            print("Run 'pak-builder setup' to configure directories.")
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
