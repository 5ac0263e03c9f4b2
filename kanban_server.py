#!/usr/bin/env python3
"""
Kanban Task Files Server
------------------------
Serves a JSON API over a folder tree of task files. Each column of the board
is a folder, each task a `<id>.md` file inside it. Browsers stay in sync by
long-polling /api/updates.

Usage:
    python kanban_server.py -t ~/notes/board -y
    python kanban_server.py --config kanban.yaml --watch

API:
    GET    /api/board               → { board }
    PUT    /api/board               → body { columns, resolutions? } → { board, applied, moved, deleted }
    GET    /api/ui                  → { show_task_editor, show_board_editor }
    GET    /api/theme               → { theme }
    GET    /api/tasks               → { folders, board, warnings, version }
    POST   /api/tasks               → body { title, description?, creator?, assigned_to?, tags?, status? }
    GET    /api/tasks/<id>          → task
    PUT    /api/tasks/<id>          → body { title?, description?, creator?, assigned_to?, tags? }
    POST   /api/tasks/<id>/move     → body { folder }
    DELETE /api/tasks/<id>          → 204
    GET    /api/updates?since=N     → { version, changed } (long-poll)
    GET    /health

Dependencies: flask, pyyaml, watchdog
"""

import argparse
import logging
import sys
from typing import Optional

from flask import Flask, jsonify, request

from taskfiles.config import Config
from taskfiles.errors import (
    BoardConflict,
    ConfigMissing,
    KanbanError,
    MalformedTaskFile,
    NotFound,
    ValidationError,
)
from taskfiles.facade import StoreFacade
from taskfiles.schema import BoardConfig, NewTask, Resolution, TaskUpdate
from taskfiles.theme import load_theme, theme_path, write_default_theme
from taskfiles.watcher import ExternalChangeWatcher

logger = logging.getLogger("kanban_server")


# ── Error mapping ────────────────────────────────────────────────────────────

def status_for(error: KanbanError) -> int:
    if isinstance(error, NotFound):
        return 404
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, BoardConflict):
        return 409
    if isinstance(error, MalformedTaskFile):
        return 422
    if isinstance(error, ConfigMissing):
        return 503
    return 500


def _json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    if data is None:
        raise ValidationError("Request body must be JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _resolutions(raw) -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("resolutions must map folder ids to resolutions")
    return {folder: Resolution.from_dict(value) for folder, value in raw.items()}


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(facade: StoreFacade, cfg: Optional[Config] = None) -> Flask:
    cfg = cfg or Config()
    app = Flask(__name__)
    app.config["FACADE"] = facade

    @app.errorhandler(KanbanError)
    def handle_kanban_error(e: KanbanError):
        payload = {"error": str(e)}
        if isinstance(e, BoardConflict):
            payload["conflicts"] = [c.to_dict() for c in e.conflicts]
        if isinstance(e, ConfigMissing):
            payload["config_missing"] = True
        return jsonify(payload), status_for(e)

    @app.errorhandler(OSError)
    def handle_os_error(e: OSError):
        logger.error(f"Filesystem error on {request.method} {request.path}: {e}")
        return jsonify({"error": str(e)}), 500

    # ── Board ────────────────────────────────────────────────────────────

    @app.route("/api/board", methods=["GET"])
    def api_board_get():
        return jsonify({"board": facade.get_board().to_dict()})

    @app.route("/api/board", methods=["PUT"])
    def api_board_put():
        data = _json_body()
        config = BoardConfig.from_dict(data)
        result = facade.save_board(config, _resolutions(data.get("resolutions")))
        return jsonify(result.to_dict())

    @app.route("/api/ui")
    def api_ui():
        return jsonify({
            "show_task_editor": cfg.show_task_editor,
            "show_board_editor": cfg.show_board_editor,
        })

    @app.route("/api/theme")
    def api_theme():
        return jsonify({"theme": load_theme(facade.root).to_dict()})

    # ── Tasks ────────────────────────────────────────────────────────────

    @app.route("/api/tasks", methods=["GET"])
    def api_tasks():
        # Read before scanning: the listing is never older than the version.
        version = facade.version
        listing, config = facade.list_tasks()
        payload = listing.to_dict()
        payload["board"] = config.to_dict()
        payload["version"] = version
        return jsonify(payload)

    @app.route("/api/tasks", methods=["POST"])
    def api_create_task():
        task = facade.create_task(NewTask.from_dict(_json_body()))
        return jsonify(task.to_dict()), 201

    @app.route("/api/tasks/<task_id>", methods=["GET"])
    def api_get_task(task_id):
        return jsonify(facade.get_task(task_id).to_dict())

    @app.route("/api/tasks/<task_id>", methods=["PUT"])
    def api_update_task(task_id):
        task = facade.update_task(task_id, TaskUpdate.from_dict(_json_body()))
        return jsonify(task.to_dict())

    @app.route("/api/tasks/<task_id>/move", methods=["POST"])
    def api_move_task(task_id):
        folder = _json_body().get("folder")
        if not isinstance(folder, str) or not folder:
            raise ValidationError("folder is required")
        return jsonify(facade.move_task(task_id, folder).to_dict())

    @app.route("/api/tasks/<task_id>", methods=["DELETE"])
    def api_delete_task(task_id):
        facade.delete_task(task_id)
        return "", 204

    # ── Long-poll ────────────────────────────────────────────────────────

    @app.route("/api/updates")
    def api_updates():
        since = request.args.get("since", default=0, type=int)
        timeout = cfg.clamp_poll_timeout(request.args.get("timeout", default=None, type=float))
        result = facade.wait_for_changes(since, timeout)
        return jsonify(result.to_dict())

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "root": str(facade.root), "version": facade.version})

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"Invalid boolean: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Kanban Task Files server")
    parser.add_argument("--config", help="Path to a YAML config file (default: ./kanban.yaml)")
    parser.add_argument("-t", "--target", help="Base directory for task folders (default: ./kanban_data or KANBAN_ROOT)")
    parser.add_argument("-y", "--yes", action="store_true", default=None,
                        help="Create a missing board file without prompting")
    parser.add_argument("--host", help="Bind address")
    parser.add_argument("--port", type=int, help="Port to bind (default: 8787 or KANBAN_PORT)")
    parser.add_argument("--show-task-editor", type=_parse_bool, metavar="BOOL")
    parser.add_argument("--show-board-editor", type=_parse_bool, metavar="BOOL")
    parser.add_argument("--watch", action="store_true", default=None,
                        help="Bump clients when task files are edited outside the server")
    parser.add_argument("--write-default-theme", action="store_true",
                        help="Create .kanban-theme.conf with default values")
    return parser


def load_config(args: argparse.Namespace) -> Config:
    cfg = Config.load(args.config)
    overrides = {
        "root": args.target,
        "yes": args.yes,
        "host": args.host,
        "port": args.port,
        "show_task_editor": args.show_task_editor,
        "show_board_editor": args.show_board_editor,
        "watch_external_changes": args.watch,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(cfg, key, value)
    cfg.resolve_paths()
    return cfg


def bootstrap_interactive(facade: StoreFacade) -> None:
    """Bootstrap, asking on the console before creating a missing board."""
    try:
        facade.bootstrap()
        return
    except ConfigMissing as e:
        print(f"{e}.")
    try:
        answer = input("Create default board file? [y/N] ").strip().lower()
    except EOFError:
        answer = ""
    if answer not in ("y", "yes"):
        raise SystemExit("Missing .workspace-kanban")
    facade.board.write_default()
    facade.bootstrap()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    cfg = load_config(args)

    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s [kanban] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if args.write_default_theme:
        if write_default_theme(cfg.root_path):
            print(f"Created default theme file at {theme_path(cfg.root_path)}")
        else:
            print(f"Theme file already exists at {theme_path(cfg.root_path)}")

    facade = StoreFacade(cfg.root_path, auto_create=cfg.yes)
    bootstrap_interactive(facade)

    watcher = None
    if cfg.watch_external_changes:
        watcher = ExternalChangeWatcher(
            cfg.root_path, facade.feed, facade.board.recent, cfg.watch_debounce_ms
        )
        watcher.start()

    app = create_app(facade, cfg)
    logger.info(f"Kanban server running on http://{cfg.host}:{cfg.port} (root: {cfg.root_path})")
    try:
        app.run(host=cfg.host, port=cfg.port, debug=False, threaded=True)
    finally:
        facade.close()
        if watcher:
            watcher.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
