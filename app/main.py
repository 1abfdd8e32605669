import argparse
import json
import sys
from collections.abc import Sequence
from dataclasses import asdict, is_dataclass

from app.config.settings import Settings
from app.logging.logger import Log
from app.sessions.models import DEFAULT_SESSION_ID, format_file_size
from app.workflow.scan_workflow import OperationResult, ScanWorkflow, build_workflow


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scan-bridge",
        description="Scan pages with SANE and upload combined documents to Paperless-ngx.",
    )
    parser.add_argument(
        "--follow",
        action="store_true",
        help="stream log messages to stdout while the command runs",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("detect", help="list attached scanners")
    commands.add_parser("diagnose", help="collect scanner toolchain diagnostics")
    commands.add_parser("fix", help="try to recover a scanner that stopped responding")
    test = commands.add_parser("test", help="query a scanner without scanning")
    test.add_argument("device", nargs="?")
    options = commands.add_parser("options", help="show a scanner's supported options")
    options.add_argument("device")

    scan = commands.add_parser("scan", help="scan page(s) into a session")
    scan.add_argument("--session", default=DEFAULT_SESSION_ID)

    commands.add_parser("sessions", help="list document sessions")
    show = commands.add_parser("show", help="show one session's pages")
    show.add_argument("session", nargs="?", default=DEFAULT_SESSION_ID)
    new = commands.add_parser("new-session", help="start a named session")
    new.add_argument("name", nargs="?")

    add = commands.add_parser("add", help="add an existing scan file to a session")
    add.add_argument("filepath")
    add.add_argument("--session", default=DEFAULT_SESSION_ID)
    delete = commands.add_parser("delete", help="delete pages by id or path")
    delete.add_argument("pages", nargs="+")
    delete.add_argument("--session", default=DEFAULT_SESSION_ID)
    reorder = commands.add_parser("reorder", help="set the page order by id")
    reorder.add_argument("page_ids", nargs="+")
    reorder.add_argument("--session", default=DEFAULT_SESSION_ID)
    clear = commands.add_parser("clear", help="delete every page of a session")
    clear.add_argument("--session", default=DEFAULT_SESSION_ID)
    clear.add_argument("--all", action="store_true", help="clear every session")

    upload = commands.add_parser("combine-upload", help="combine a session and upload it")
    upload.add_argument("--session", default=DEFAULT_SESSION_ID)
    selected = commands.add_parser("upload-selected", help="upload individual pages")
    selected.add_argument("pages", nargs="+")
    selected.add_argument("--session", default=DEFAULT_SESSION_ID)
    return parser


def _emit(payload: object) -> None:
    if is_dataclass(payload) and not isinstance(payload, type):
        payload = asdict(payload)
    print(json.dumps(payload, indent=2, default=str))


def _follow(message: str) -> None:
    print(message, flush=True)


def _show_session(workflow: ScanWorkflow, session_id: str) -> None:
    session = workflow.get_session(session_id)
    print(f"{session.name} ({session.id}): {session.page_count} page(s), "
          f"{format_file_size(session.total_bytes)}")
    for page in session.pages:
        print(f"  {page.page_number:>3}. {page.filename}  "
              f"{format_file_size(page.size_bytes)}  id={page.id}")


def run_command(workflow: ScanWorkflow, args: argparse.Namespace) -> int:
    """Dispatch one parsed command. Returns the process exit code."""
    command = args.command
    result: object
    if command == "detect":
        result = workflow.detect_scanners()
    elif command == "diagnose":
        diagnostics = workflow.diagnose()
        result = {"facts": diagnostics.facts, "suggestions": diagnostics.suggestions}
    elif command == "fix":
        result = workflow.fix_scanner()
    elif command == "test":
        result = workflow.test_scanner(args.device)
    elif command == "options":
        result = workflow.scanner_options(args.device)
    elif command == "scan":
        result = workflow.scan_page(args.session)
    elif command == "sessions":
        result = [asdict(session) for session in workflow.list_sessions()]
    elif command == "show":
        _show_session(workflow, args.session)
        return 0
    elif command == "new-session":
        result = workflow.create_session(args.name)
    elif command == "add":
        result = workflow.add_page(args.session, args.filepath)
    elif command == "delete":
        result = workflow.delete_pages(args.session, args.pages)
    elif command == "reorder":
        result = workflow.reorder_pages(args.session, args.page_ids)
    elif command == "clear":
        result = workflow.clear_all_sessions() if args.all else workflow.clear_session(args.session)
    elif command == "combine-upload":
        result = workflow.combine_and_upload(args.session)
    elif command == "upload-selected":
        result = workflow.upload_selected(args.session, args.pages)
    else:
        raise ValueError(f"Unknown command '{command}'")

    _emit(result)
    if isinstance(result, OperationResult):
        return 0 if result.success else 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point: load settings -> build dependencies -> run one command."""
    args = _build_parser().parse_args(argv)
    settings = Settings()
    Log.configure(settings.log_level, stream=sys.stderr, console=not args.follow)
    workflow = build_workflow(settings)
    try:
        if args.follow:
            with Log.listen(_follow):
                return run_command(workflow, args)
        return run_command(workflow, args)
    finally:
        workflow.close()


if __name__ == "__main__":
    sys.exit(main())
