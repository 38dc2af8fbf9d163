"""
Command-line interface for claude2openai.

Run without a command, ``claude2openai`` serves the proxy in the foreground;
this is the command a service supervisor keeps alive.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

import yaml

from . import WELCOME_MESSAGE, __version__
from . import daemon
from .config import CONFIG_FILE_ENV, config, setup_logging
from .config_manager import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    DEFAULT_LOG_DIR,
    DEFAULT_MODELS_FILE,
    initialize_config,
    load_config_file,
)

logger = logging.getLogger(__name__)


# ANSI color codes for terminal output
class Colors:
    GREEN = "\033[92m"
    RED = "\033[91m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RESET = "\033[0m"


def version_banner() -> str:
    return f"{WELCOME_MESSAGE}\nclaude2openai {__version__}"


class WelcomeVersionAction(argparse.Action):
    """Print the welcome banner and exit with status 1, as the released binary does."""

    def __init__(self, option_strings, dest=argparse.SUPPRESS, default=argparse.SUPPRESS, help=None):
        super().__init__(option_strings=option_strings, dest=dest, default=default, nargs=0, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        print(version_banner())
        parser.exit(1)


def _field(label: str, value, width: int = 8, bold: bool = False) -> None:
    c = Colors
    shown = f"{c.BOLD}{value}{c.RESET}" if bold else value
    print(f"  {c.CYAN}{label + ':':<{width}}{c.RESET}{shown}")


def _section(title: str, rule: str = "-") -> None:
    print("\n" + rule * 60)
    print(title)
    print(rule * 60)


def _show_process(info: daemon.ProcessInfo) -> None:
    _field("PID", info.pid, bold=True)
    if info.port:
        _field("Port", info.port, bold=True)
    if info.uptime:
        _field("Uptime", info.uptime)


def _show_log_location() -> None:
    print(f"\n{Colors.DIM}Log:{Colors.RESET} {daemon.get_service_descriptor().log_path}")


def _fail(message: str, detail: str = "") -> None:
    suffix = f" {detail}" if detail else ""
    print(f"{Colors.RED}{message}{Colors.RESET}{suffix}", file=sys.stderr)
    sys.exit(1)


def print_config(models_path: Path, config_path: Path) -> None:
    """Show file locations, the service descriptor and both config files."""
    _section("claude2openai settings", rule="=")

    descriptor = daemon.get_service_descriptor()
    for label, value in (
        ("Config dir", DEFAULT_CONFIG_DIR),
        ("Log dir", DEFAULT_LOG_DIR),
        ("config.json", config_path),
        ("models.yaml", models_path),
        ("Service Command", " ".join(descriptor.run)),
        ("Service Keep Alive", descriptor.keep_alive),
        ("Service Log", descriptor.log_path),
    ):
        print(f"{label}: {value}")

    _section(f"{config_path.name}:")
    file_config = load_config_file(config_path)
    print(json.dumps(file_config, indent=2) if file_config else "(missing or empty, defaults apply)")

    _section(f"{models_path.name}:")
    if not models_path.exists():
        print("(missing, built-in model list applies)")
    else:
        try:
            entries = yaml.safe_load(models_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            entries = None
            print(f"(invalid YAML: {e})")
        else:
            if entries:
                print(yaml.safe_dump(entries, default_flow_style=False, sort_keys=False))
                print(f"Total models: {len(entries)}")
            else:
                print("(empty, built-in model list applies)")

    print("=" * 60 + "\n")


def _get_host_port(args: argparse.Namespace) -> tuple[str, int]:
    """Host and port from args, falling back to the loaded configuration."""
    host = getattr(args, "host", None)
    port = getattr(args, "port", None)
    return host or config.host, port or config.port


def _global_args(args: argparse.Namespace) -> list[str]:
    """Re-encode global options for a child process command line."""
    extra = []
    if args.config:
        extra += ["--config", str(args.config)]
    if args.models:
        extra += ["--models", str(args.models)]
    return extra


def cmd_serve(args: argparse.Namespace) -> None:
    """Serve the proxy in the foreground."""
    from .client import load_models_config
    from .server import run_server

    setup_logging(log_to_file=getattr(args, "log_file", False))
    # The reloader imports the app in a fresh worker process
    if args.config:
        os.environ[CONFIG_FILE_ENV] = str(args.config)
    if args.models:
        os.environ["MODELS_FILE"] = str(args.models)
        load_models_config(args.models)

    host, port = _get_host_port(args)
    logger.info(f"Claude2OpenAI {__version__} listening on {host}:{port}")
    run_server(host, port, reload=getattr(args, "reload", False))


def cmd_supervise(args: argparse.Namespace) -> None:
    """Keep the server alive in the foreground, restarting it when it exits."""
    setup_logging()
    host, port = _get_host_port(args)
    descriptor = daemon.get_service_descriptor()
    extra_args = _global_args(args) + ["serve", "--host", str(host), "--port", str(port)]
    sys.exit(daemon.supervise(descriptor, extra_args=extra_args))


def cmd_init(args: argparse.Namespace) -> None:
    """Write default config files, reporting which ones already existed."""
    c = Colors
    force = getattr(args, "force", False)
    before = {path: path.exists() for path in (DEFAULT_MODELS_FILE, DEFAULT_CONFIG_FILE)}

    print(f"\n{c.BOLD}Setting up {DEFAULT_CONFIG_DIR}{c.RESET}")
    initialize_config(force=force)

    for path, existed in before.items():
        if not existed:
            state = f"{c.GREEN}created{c.RESET}"
        elif force and path == DEFAULT_CONFIG_FILE:
            state = f"{c.YELLOW}reset{c.RESET}"
        else:
            state = f"{c.DIM}kept{c.RESET}"
        print(f"  {path.name:<12} {state}")

    print(f"\nLogs go to {DEFAULT_LOG_DIR}")
    print(
        f"Edit {c.BOLD}models.yaml{c.RESET} to change the allowed models, "
        f"then run {c.BOLD}claude2openai start{c.RESET}.\n"
    )


def cmd_start(args: argparse.Namespace) -> None:
    """Start the keep-alive supervisor in the background."""
    c = Colors

    running = daemon.get_daemon_status()
    if running is not None:
        print(f"{c.YELLOW}claude2openai is already running{c.RESET}")
        _show_process(running)
        print(f"\n{c.DIM}Run 'claude2openai stop' first.{c.RESET}")
        sys.exit(1)

    host, port = _get_host_port(args)
    try:
        pid = daemon.start_daemon(
            host=host,
            port=port,
            models_path=args.models,
            config_path=args.config,
        )
    except RuntimeError as e:
        _fail("Could not start claude2openai:", str(e))

    print(f"{c.GREEN}{c.BOLD}claude2openai started{c.RESET} on {host}:{port}")
    _field("PID", pid, bold=True)
    _show_log_location()


def _stop_running(info: daemon.ProcessInfo) -> None:
    print(f"Stopping claude2openai {Colors.DIM}(PID {info.pid}){Colors.RESET}...")
    if not daemon.stop_daemon():
        _fail("Could not stop claude2openai.")
    print(f"{Colors.GREEN}Stopped.{Colors.RESET}")


def cmd_stop(args: argparse.Namespace) -> None:
    """Stop the background supervisor and its server."""
    running = daemon.get_daemon_status()
    if running is None:
        print(f"{Colors.DIM}claude2openai is not running.{Colors.RESET}")
        sys.exit(0)
    _stop_running(running)


def cmd_restart(args: argparse.Namespace) -> None:
    running = daemon.get_daemon_status()
    if running is not None:
        _stop_running(running)
    cmd_start(args)


def cmd_status(args: argparse.Namespace) -> None:
    c = Colors
    running = daemon.get_daemon_status()

    if running is None:
        print(f"claude2openai: {c.RED}{c.BOLD}STOPPED{c.RESET}")
        sys.exit(0)

    print(f"claude2openai: {c.GREEN}{c.BOLD}RUNNING{c.RESET}")
    _show_process(running)
    _show_log_location()


def _add_host_port_args(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument("--host", default=None, help=f"Bind address (default: {config.host})")
    subparser.add_argument("--port", type=int, default=None, help=f"Listen port (default: {config.port})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claude2openai",
        description="A proxy to convert Claude API into OpenAI API format",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  claude2openai                      Serve in the foreground
  claude2openai init                 Write default config files
  claude2openai start --port 8080    Run in the background, kept alive
  claude2openai status               Show whether the background server runs
  claude2openai --print-config       Show settings and config files
        """,
    )

    parser.add_argument("--version", action=WelcomeVersionAction, help="Print the welcome banner and version")
    parser.add_argument("--models", type=Path, default=None, metavar="PATH", help="models.yaml to use")
    parser.add_argument("--config", type=Path, default=None, metavar="PATH", help="config.json to use")
    parser.add_argument("--print-config", action="store_true", help="Show settings and exit")

    subparsers = parser.add_subparsers(dest="command", title="commands")

    serve_parser = subparsers.add_parser("serve", help="Serve in the foreground (default)")
    _add_host_port_args(serve_parser)
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    serve_parser.add_argument("--log-file", action="store_true", help="Also write the rotating log file")
    serve_parser.set_defaults(func=cmd_serve)

    supervise_parser = subparsers.add_parser("supervise", help="Serve and restart the server whenever it exits")
    _add_host_port_args(supervise_parser)
    supervise_parser.set_defaults(func=cmd_supervise)

    start_parser = subparsers.add_parser("start", help="Run the supervisor in the background")
    _add_host_port_args(start_parser)
    start_parser.set_defaults(func=cmd_start)

    subparsers.add_parser("stop", help="Stop the background server").set_defaults(func=cmd_stop)

    restart_parser = subparsers.add_parser("restart", help="Stop, then start the background server")
    _add_host_port_args(restart_parser)
    restart_parser.set_defaults(func=cmd_restart)

    subparsers.add_parser("status", help="Show background server status").set_defaults(func=cmd_status)

    init_parser = subparsers.add_parser("init", help="Write default config files")
    init_parser.add_argument("--force", action="store_true", help="Reset config.json (models.yaml is kept)")
    init_parser.set_defaults(func=cmd_init)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    if args.config:
        config.load(args.config)
    if args.models:
        config.models_file = args.models

    if args.print_config:
        print_config(args.models or config.models_file, args.config or DEFAULT_CONFIG_FILE)
        return

    if not hasattr(args, "func"):
        # No command: run the way the service descriptor does
        args.host = None
        args.port = None
        args.func = cmd_serve

    args.func(args)
