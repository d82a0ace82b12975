"""
Accessibility Toolkit - CLI Management Tool.

Commands:
  serve <server>                 Start an MCP server on stdio
  api [--host --port]            Start the checklist HTTP API
  contrast FG BG                 Check contrast of one colour pair
  sessions list|show|delete      Inspect stored checklist sessions
  auth url|exchange|status       Google OAuth setup for apps-script
  workflows list                 Show agent-autonomy workflows
"""

import argparse
import importlib
import json
import logging
import sys

import httpx

import checklist_store as store
import contrast_engine as engine

log = logging.getLogger("manage")

SERVERS = {
    "shell": "shell_server",
    "github": "github_server",
    "browser": "browser_server",
    "thinking": "thinking_server",
    "diagnostics": "diagnostics_server",
    "autonomy": "autonomy_server",
    "apps-script": "apps_script_server",
    "contrast": "contrast_server",
}

SEP = "=" * 55


def _configure_logging(verbose: bool):
    # stdout carries the MCP stdio protocol
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def cmd_serve(args):
    """Start one of the MCP servers."""
    module = importlib.import_module(SERVERS[args.server])
    log.info("Starting %s (%s)", args.server, module.mcp.name)
    module.main()
    return 0


def cmd_api(args):
    """Start the checklist HTTP API with uvicorn."""
    import uvicorn

    import checklist_api

    saves_dir = args.saves_dir or store.SAVES_DIR
    app = checklist_api.create_app(saves_dir=saves_dir, types_file=args.types_file)
    print(f"Starting checklist API on http://{args.host}:{args.port}", file=sys.stderr)
    print(f"  Saves directory: {saves_dir}", file=sys.stderr)
    uvicorn.run(app, host=args.host, port=args.port, log_level="debug" if args.verbose else "info")
    return 0


def cmd_contrast(args):
    """Print ratio and compliance for one colour pair."""
    fg = engine.parse_color(args.foreground)
    bg = engine.parse_color(args.background)
    if fg is None or bg is None:
        bad = args.foreground if fg is None else args.background
        print(f"Error: Invalid color: {bad}")
        return 1

    ratio = engine.ratio_for(fg, bg)
    large = engine.is_large_text(args.size, args.bold)
    try:
        verdict = engine.check_compliance(ratio, args.standard, large)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    print(SEP)
    print(f"  Foreground:  {engine.rgb_to_hex(fg)}  {engine.rgb_to_string(fg)}")
    print(f"  Background:  {engine.rgb_to_hex(bg)}  {engine.rgb_to_string(bg)}")
    print(f"  Ratio:       {ratio:.2f}:1")
    print(f"  Large text:  {'yes' if large else 'no'}")
    for level in engine.WCAG_STANDARDS:
        check = engine.check_compliance(ratio, level, large)
        print(f"  {level:<4} ({check['required']:>3}:1)  {'PASS' if check['passed'] else 'FAIL'}")
    print(SEP)

    if not verdict["passed"]:
        print("Suggestions:")
        for s in engine.suggest_colors(args.foreground, args.background, verdict["required"]):
            print(f"  {s['name']:<28} {s['hex']}  {s['ratio']:.2f}:1")
        return 1
    return 0


def cmd_sessions(args):
    """List, show or delete stored checklist sessions."""
    saves_dir = args.saves_dir
    try:
        if args.action == "list":
            sessions = store.list_sessions(saves_dir=saves_dir)
            if not sessions:
                print("No saved sessions.")
                return 0
            print(f"{'KEY':<5} {'TYPE':<24} {'CREATED':>14} {'UPDATED':>14}")
            for s in sessions:
                updated = s["metadata"].get("lastModified", "")
                print(f"{s['sessionKey']:<5} {s['type']:<24} {s['created']:>14} {updated!s:>14}")
            return 0

        if not args.key:
            print(f"Error: sessions {args.action} requires a session KEY")
            return 1

        if args.action == "show":
            data = store.restore(args.key, saves_dir=saves_dir)
            print(json.dumps(data, indent=2, ensure_ascii=False))
            if isinstance(data.get("state"), dict):
                p = store.progress(data["state"])
                print(
                    f"\nProgress: {p['completed']}/{p['total']} completed, "
                    f"{p['inProgress']} in progress ({p['percentComplete']}%)"
                )
            return 0

        store.delete(args.key, saves_dir=saves_dir)
        print(f"Deleted session {args.key}")
        return 0
    except store.ChecklistError as e:
        print(f"Error: {e.message}")
        return 1


def cmd_auth(args):
    """Google OAuth setup for the apps-script server."""
    import google_api

    auth = google_api.GoogleAuth()
    try:
        if args.action == "url":
            print("Open this URL, approve access, then run 'manage.py auth exchange <code>':")
            print(auth.auth_url())
            return 0
        if args.action == "exchange":
            if not args.code:
                print("Error: auth exchange requires the authorization CODE")
                return 1
            auth.exchange_code(args.code)
            print(f"Tokens saved to {auth.token_path}")
            return 0
    except (google_api.AuthError, httpx.HTTPError) as e:
        print(f"Error: {e}")
        return 1
    finally:
        auth.close()

    print(SEP)
    print(f"  Config:         {auth.config_path}")
    print(f"  Token cache:    {auth.token_path}")
    print(f"  Authenticated:  {'yes' if auth.is_authenticated() else 'no'}")
    if auth.tokens and auth.tokens.get("expiry_date"):
        print(f"  Expires (ms):   {auth.tokens['expiry_date']}")
    print(SEP)
    return 0 if auth.is_authenticated() else 1


def cmd_workflows(args):
    """Show agent-autonomy workflows."""
    import autonomy_server

    workflows = autonomy_server.WorkflowEngine(path=args.file)
    print(f"Workflows file: {workflows.path}")
    for w in workflows.summaries():
        flag = "auto" if w["auto_approve"] else "manual"
        print(f"  {w['name']:<20} {w['command_count']:>3} cmds  {flag:<6}  {w['description']}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Accessibility Toolkit - Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  serve <server>                 Start an MCP server on stdio
  api [--host --port]            Start the checklist HTTP API
  contrast FG BG                 Check contrast of one colour pair
  sessions list|show|delete      Inspect stored checklist sessions
  auth url|exchange|status       Google OAuth setup for apps-script
  workflows list                 Show agent-autonomy workflows
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # serve
    p_serve = subparsers.add_parser("serve", help="Start an MCP server")
    p_serve.add_argument("server", choices=sorted(SERVERS), help="Server to start")

    # api
    p_api = subparsers.add_parser("api", help="Start the checklist HTTP API")
    p_api.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    p_api.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    p_api.add_argument("--saves-dir", help=f"Sessions directory (default: {store.SAVES_DIR})")
    p_api.add_argument("--types-file", help=f"Checklist types JSON (default: {store.TYPES_FILE})")

    # contrast
    p_contrast = subparsers.add_parser("contrast", help="Check contrast of a colour pair")
    p_contrast.add_argument("foreground", help="Text colour (hex, rgb(), hsl() or name)")
    p_contrast.add_argument("background", help="Background colour")
    p_contrast.add_argument("--size", type=float, default=engine.DEFAULT_FONT_SIZE, help="Font size in px")
    p_contrast.add_argument("--bold", action="store_true", help="Text is bold")
    p_contrast.add_argument("--standard", default="AA", choices=list(engine.WCAG_STANDARDS), help="WCAG level")

    # sessions
    p_sessions = subparsers.add_parser("sessions", help="Inspect stored checklist sessions")
    p_sessions.add_argument("action", choices=["list", "show", "delete"])
    p_sessions.add_argument("key", nargs="?", help="Three-character session key")
    p_sessions.add_argument("--saves-dir", help=f"Sessions directory (default: {store.SAVES_DIR})")

    # auth
    p_auth = subparsers.add_parser("auth", help="Google OAuth setup")
    p_auth.add_argument("action", choices=["url", "exchange", "status"])
    p_auth.add_argument("code", nargs="?", help="Authorization code (for exchange)")

    # workflows
    p_workflows = subparsers.add_parser("workflows", help="Show agent-autonomy workflows")
    p_workflows.add_argument("action", choices=["list"])
    p_workflows.add_argument("--file", help="Workflows JSON (default: WORKFLOWS_FILE)")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "serve": cmd_serve,
        "api": cmd_api,
        "contrast": cmd_contrast,
        "sessions": cmd_sessions,
        "auth": cmd_auth,
        "workflows": cmd_workflows,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main() or 0)
