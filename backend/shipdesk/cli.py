import argparse
import asyncio
import json
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import Any, Dict

import uvicorn

from shipdesk.core.config import get_settings
from shipdesk.core.errors import ShipdeskError
from shipdesk.core.logging_config import configure_logging, session_id_ctx_var
from shipdesk.core.redis_client import close_redis
from shipdesk.seeds import seed_if_empty
from shipdesk.services import mutations, notifications, portability
from shipdesk.services import tracking as tracking_service
from shipdesk.services.auth import AuthUser
from shipdesk.services.backend_mode import LocalMode, RemoteMode, dispose_backend_mode, select_backend_mode
from shipdesk.services.clock import format_timestamp
from shipdesk.services.dashboard import DashboardSession, Toast
from shipdesk.services.projector import TablePage, ViewQuery

SAFE_JSON_FILENAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*\.json$")
LOAD_TIMEOUT_SECONDS = 10.0


def _normalize_json_filename(raw_path: str) -> str:
    raw = (raw_path or "").strip()
    if not raw:
        raise SystemExit("Path is required")
    if Path(raw).name != raw:
        raise SystemExit("Only JSON file names are allowed (no directories)")
    if not SAFE_JSON_FILENAME_RE.fullmatch(raw):
        raise SystemExit("Invalid JSON file name")
    return raw


def _resolve_json_path(raw_path: str, *, must_exist: bool) -> Path:
    resolved = (Path.cwd().resolve() / _normalize_json_filename(raw_path)).resolve(strict=False)
    if must_exist and not resolved.is_file():
        raise SystemExit(f"Input file not found: {resolved}")
    if not must_exist and resolved.is_dir():
        raise SystemExit(f"Output path points to a directory: {resolved}")
    return resolved


class ConsoleRenderer:
    """Prints projected pages and toasts; the CLI's stand-in for the dashboard UI."""

    def __init__(self, *, quiet: bool = False) -> None:
        self.quiet = quiet

    def render_table(self, page: TablePage) -> None:
        if self.quiet:
            return
        for item in page.page:
            print(
                "\t".join(
                    (
                        item.id,
                        item.tracking_no,
                        item.sender.name,
                        item.origin,
                        item.destination,
                        item.status,
                        format_timestamp(item.updated_at),
                    )
                )
            )
        print(page.summary)

    def show_toast(self, toast: Toast) -> None:
        print(f"[{toast.kind}] {toast.message}")


@asynccontextmanager
async def _dashboard(operator_email: str | None, *, quiet: bool = False) -> AsyncIterator[DashboardSession]:
    settings = get_settings()
    session = DashboardSession.from_settings(settings, renderer=ConsoleRenderer(quiet=quiet))
    session_id_ctx_var.set(session.session_id)
    try:
        if isinstance(session.mode, LocalMode):
            if settings.seed_demo_data and seed_if_empty(session.mode.store):
                session.repository.reload()
        else:
            session.on_auth_changed(AuthUser(email=operator_email) if operator_email else None)
            if not session.repository.is_subscribed:
                raise SystemExit(f"{session.status_text()}: pass --operator-email with an allowed address")
            if not await session.repository.wait_until_loaded(LOAD_TIMEOUT_SECONDS):
                raise SystemExit("Timed out waiting for the first shipment snapshot")
        yield session
    finally:
        await session.close()
        await close_redis()


def _load_draft(input_path: Path) -> Dict[str, Any]:
    payload = json.loads(input_path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise SystemExit("Draft file must contain a JSON object")
    return payload


async def export_data(output: Path) -> None:
    mode = select_backend_mode(get_settings())
    try:
        output.write_text(await portability.export_json(mode), encoding="utf-8")
    finally:
        await dispose_backend_mode(mode)
        await close_redis()
    print(f"Exported shipments to {output}")


async def import_data(input_path: Path) -> None:
    mode = select_backend_mode(get_settings())
    try:
        ok = await portability.import_documents(mode, input_path.read_text(encoding="utf-8"))
    finally:
        await dispose_backend_mode(mode)
        await close_redis()
    if not ok:
        raise SystemExit(f"Import failed: {input_path} does not hold a valid shipment array")
    print(f"Imported shipments from {input_path}")


async def seed_data() -> None:
    mode = select_backend_mode(get_settings())
    try:
        if not isinstance(mode, LocalMode):
            raise SystemExit("Demo data is only seeded into the local store")
        seeded = seed_if_empty(mode.store)
    finally:
        await dispose_backend_mode(mode)
        await close_redis()
    print("Seeded demo shipments" if seeded else "Local store already holds shipments")


async def init_db() -> None:
    mode = select_backend_mode(get_settings())
    try:
        if not isinstance(mode, RemoteMode):
            raise SystemExit("REMOTE_DATABASE_URL is not configured")
        await mode.store.create_schema()
    finally:
        await dispose_backend_mode(mode)
        await close_redis()
    print("Remote schema is ready")


async def list_shipments(args: argparse.Namespace) -> None:
    query = ViewQuery().with_text(args.search or "").with_status(args.status or "").with_sort(args.sort)
    async with _dashboard(args.operator_email, quiet=True) as session:
        print(session.status_text())
        session.renderer = ConsoleRenderer()
        session.set_query(query.with_page(args.page))


async def watch_shipments(args: argparse.Namespace) -> None:
    async with _dashboard(args.operator_email) as session:
        print(session.status_text())
        if isinstance(session.mode, LocalMode):
            print("Local mode has no realtime feed; nothing to watch")
            return
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(asyncio.Event().wait(), timeout=args.duration)


async def track(tracking_no: str) -> None:
    settings = get_settings()
    mode = select_backend_mode(settings)
    try:
        shipment = await tracking_service.lookup(mode, tracking_no)
    finally:
        await dispose_backend_mode(mode)
        await close_redis()
    if shipment is None:
        raise SystemExit(f'No results for "{tracking_no.strip()}"')
    print(json.dumps(tracking_service.build_tracking_view(shipment).model_dump(), indent=2, ensure_ascii=False))


def _require_ok(result: mutations.MutationResult) -> None:
    if not result.ok:
        raise SystemExit(1)


async def add_shipment(args: argparse.Namespace) -> None:
    draft = _load_draft(_resolve_json_path(args.draft, must_exist=True))
    async with _dashboard(args.operator_email, quiet=True) as session:
        result = mutations.submit(session, draft)
        await session.drain()
        _require_ok(result)
        assert result.shipment is not None
        print(f"{result.shipment.id}\t{result.shipment.tracking_no}")


async def quick_edit_shipment(args: argparse.Namespace) -> None:
    draft = {
        "id": args.id,
        "status": args.status,
        "statusDate": args.status_date,
        "statusTime": args.status_time,
        "location": args.location,
        "notes": args.notes,
    }
    async with _dashboard(args.operator_email, quiet=True) as session:
        result = mutations.quick_edit(session, draft)
        await session.drain()
        _require_ok(result)


async def delete_shipment(args: argparse.Namespace) -> None:
    async with _dashboard(args.operator_email, quiet=True) as session:
        result = mutations.delete(session, args.id)
        await session.drain()
        _require_ok(result)


def preview_email(args: argparse.Namespace) -> None:
    notice = notifications.StatusNotice(
        tracking_no=args.tracking_no,
        status=args.status,
        status_date=args.status_date,
        status_time=args.status_time,
        location=args.location,
        remarks=args.remarks,
        sender_email=args.sender_email,
        receiver_email=args.receiver_email,
        is_new=bool(args.new),
    )
    email = notifications.compose(notice)
    print(f"Subject: {email.subject}\n\n{email.body}\n")
    for link in notifications.mailto_links(notice):
        print(link)


def _add_portability_commands(subparsers) -> None:
    export_cmd = subparsers.add_parser("export-data", help="Export shipments to JSON")
    export_cmd.add_argument("--output", default=portability.EXPORT_FILENAME, help="Output JSON path")

    import_cmd = subparsers.add_parser("import-data", help="Import shipments from JSON")
    import_cmd.add_argument("--input", required=True, help="Input JSON path")

    subparsers.add_parser("seed-data", help="Seed demo shipments into an empty local store")
    subparsers.add_parser("init-db", help="Create the remote shipment table")


def _add_operator_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--operator-email", help="Signed-in operator (checked against ADMIN_EMAIL_ALLOWLIST)")


def _add_dashboard_commands(subparsers) -> None:
    list_cmd = subparsers.add_parser("list", help="Show one page of the shipment table")
    list_cmd.add_argument("--search", default="", help="Free-text filter")
    list_cmd.add_argument("--status", default="", help="Exact status filter")
    list_cmd.add_argument("--sort", default="updatedAt:desc", help="Sort as key:dir, e.g. trackingNo:asc")
    list_cmd.add_argument("--page", type=int, default=0, help="Zero-based page index")
    _add_operator_argument(list_cmd)

    watch = subparsers.add_parser("watch", help="Print the table on every realtime change")
    watch.add_argument("--duration", type=float, default=None, help="Stop after this many seconds")
    _add_operator_argument(watch)

    track_cmd = subparsers.add_parser("track", help="Look up a shipment by tracking number")
    track_cmd.add_argument("tracking_no", help="Tracking number")

    add = subparsers.add_parser("add", help="Create or update a shipment from a JSON draft")
    add.add_argument("--draft", required=True, help="Draft JSON path (include id to update)")
    _add_operator_argument(add)

    quick = subparsers.add_parser("quick-edit", help="Update the status fields of a shipment")
    quick.add_argument("--id", required=True, help="Shipment id")
    quick.add_argument("--status", required=True)
    quick.add_argument("--status-date", required=True, help="YYYY-MM-DD")
    quick.add_argument("--status-time", required=True, help="HH:MM")
    quick.add_argument("--location", required=True)
    quick.add_argument("--notes", required=True)
    _add_operator_argument(quick)

    delete = subparsers.add_parser("delete", help="Delete a shipment")
    delete.add_argument("--id", required=True, help="Shipment id")
    _add_operator_argument(delete)


def _add_preview_command(subparsers) -> None:
    preview = subparsers.add_parser("preview-email", help="Render a customer notification without sending it")
    preview.add_argument("--tracking-no", required=True)
    preview.add_argument("--status", required=True)
    preview.add_argument("--status-date", default="")
    preview.add_argument("--status-time", default="")
    preview.add_argument("--location", default="")
    preview.add_argument("--remarks", default="")
    preview.add_argument("--sender-email", default="")
    preview.add_argument("--receiver-email", default="")
    preview.add_argument("--new", action="store_true", help="Render the shipment-created variant")


def _add_serve_command(subparsers) -> None:
    serve = subparsers.add_parser("serve", help="Run the tracking API (shipdesk.main:app) with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Restart on code changes")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Shipment dashboard and portability utilities")
    subparsers = parser.add_subparsers(dest="command")
    _add_portability_commands(subparsers)
    _add_dashboard_commands(subparsers)
    _add_preview_command(subparsers)
    _add_serve_command(subparsers)
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "export-data":
        asyncio.run(export_data(_resolve_json_path(args.output, must_exist=False)))
        return True

    if args.command == "import-data":
        asyncio.run(import_data(_resolve_json_path(args.input, must_exist=True)))
        return True

    if args.command == "seed-data":
        asyncio.run(seed_data())
        return True

    if args.command == "init-db":
        asyncio.run(init_db())
        return True

    handlers = {
        "list": list_shipments,
        "watch": watch_shipments,
        "add": add_shipment,
        "quick-edit": quick_edit_shipment,
        "delete": delete_shipment,
    }
    if args.command in handlers:
        asyncio.run(handlers[args.command](args))
        return True

    if args.command == "track":
        asyncio.run(track(args.tracking_no))
        return True

    if args.command == "preview-email":
        preview_email(args)
        return True

    if args.command == "serve":
        uvicorn.run("shipdesk.main:app", host=args.host, port=args.port, reload=args.reload)
        return True

    return False


def main(argv: list[str] | None = None):
    settings = get_settings()
    configure_logging(settings.log_json)
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        handled = _run_cli_command(args)
    except ShipdeskError as exc:
        raise SystemExit(exc.message) from exc
    if not handled:
        parser.print_help()


if __name__ == "__main__":
    main()
