"""
Command line entry point.

    matchsim seed two-servers.db a:2:9001 b:0:9002
    matchsim show two-servers.db
    matchsim bootstrap two-servers.db --hold

Bare dataset names resolve under MATCHSIM_DATA_DIR (<cwd>/data by default);
paths with a directory component are used as given.
"""

import argparse
import os
import sys
import threading
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .dataset import get_dataset_path
from .environment import create_environment
from .exceptions import HarnessError
from .logging_config import configure_logging
from .settings import EnvironmentSettings, ServerParams, load_settings
from .store import GameServerConfig, GameServerStore, seed_dataset

console = Console()


def _parse_server(spec: str) -> GameServerConfig:
    try:
        server_id, connections, port = spec.split(":")
        return GameServerConfig(id=server_id, connections=int(connections), port=int(port))
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Expected <id>:<connections>:<port>, got {spec!r}"
        ) from None


def _resolve_dataset(dataset: str, settings: EnvironmentSettings) -> str:
    # Bare names live under the data dir; anything with a directory is used as given
    if os.path.dirname(dataset):
        return dataset
    return get_dataset_path(dataset, settings.data_dir)


def _config_table(configs: list[GameServerConfig]) -> Table:
    table = Table(show_header=True, box=None)
    table.add_column("Server")
    table.add_column("Address")
    table.add_column("Connections", justify="right")
    table.add_column("State")
    for config in configs:
        table.add_row(config.id, f"{config.host}:{config.port}", str(config.connections), str(config.state))
    return table


def cmd_seed(args: argparse.Namespace) -> int:
    dataset = _resolve_dataset(args.dataset, load_settings())
    Path(dataset).parent.mkdir(parents=True, exist_ok=True)
    seed_dataset(dataset, args.servers)
    console.print(f"[green]Seeded {len(args.servers)} servers into {dataset}[/green]")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    store = GameServerStore(_resolve_dataset(args.dataset, load_settings()))
    try:
        console.print(_config_table(store.get_all_configs()))
        console.print(f"Connections: {store.get_total_connection_count()}")
    finally:
        store.close()
    return 0


def cmd_bootstrap(args: argparse.Namespace) -> int:
    settings = load_settings()
    params = ServerParams(max_connections=args.max_connections, ready_timeout=args.ready_timeout)
    cancel = threading.Event()

    dataset = _resolve_dataset(args.dataset, settings)
    env = create_environment(dataset, params, cancel=cancel, settings=settings)
    try:
        console.print(f"[bold]Matchmaking listening on port {env.port}[/bold]")
        console.print(env.describe())
        if args.hold:
            console.print("Press Ctrl-C to tear down")
            try:
                cancel.wait()
            except KeyboardInterrupt:
                cancel.set()
    finally:
        env.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="matchsim", description="Disposable matchmaking environments for integration tests"
    )
    parser.add_argument("--log-level", default=None, help="Override MATCHSIM_LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    seed = subparsers.add_parser("seed", help="Write server configurations into a dataset")
    seed.add_argument("dataset")
    seed.add_argument("servers", nargs="+", type=_parse_server, help="<id>:<connections>:<port>")
    seed.set_defaults(func=cmd_seed)

    show = subparsers.add_parser("show", help="List server configurations in a dataset")
    show.add_argument("dataset")
    show.set_defaults(func=cmd_show)

    bootstrap = subparsers.add_parser("bootstrap", help="Bootstrap an environment from a dataset")
    bootstrap.add_argument("dataset")
    bootstrap.add_argument("--max-connections", type=int, default=64)
    bootstrap.add_argument("--ready-timeout", type=float, default=10.0)
    bootstrap.add_argument("--hold", action="store_true", help="Keep running until Ctrl-C")
    bootstrap.set_defaults(func=cmd_bootstrap)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or load_settings().log_level)

    try:
        return args.func(args)
    except HarnessError as e:
        console.print(f"[red]{e.error_code}: {e.message}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
