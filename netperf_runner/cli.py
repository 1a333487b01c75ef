"""
CLI interface for the network test runner.
"""

import asyncio
import sys

import typer
from rich.console import Console
from rich.table import Table
from shared.settings import NetperfRunnerSettings
from shared.utils import setup_logging

from .registry import THROUGHPUT_SUITE, TestRegistry, build_default_registry
from .sessions.base import IcePolicy, SessionFactory, TransportSession
from .stats import format_result

app = typer.Typer(
    name="netperf-runner",
    help="Run WebRTC throughput, bandwidth estimation and latency tests",
    add_completion=False,
)
console = Console()


def configure_logging(settings: NetperfRunnerSettings, verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = "DEBUG" if verbose else settings.log_level
    setup_logging(level=level, use_rich=True)


def create_session_factory(platform: str, settings: NetperfRunnerSettings) -> SessionFactory:
    """
    Build a session factory for the chosen platform.

    Platform SDKs are imported here, not at module level, so only one
    platform's WebRTC library is ever loaded into the process.
    """
    if platform == "livekit":
        livekit = settings.livekit
        if not (livekit.livekit_url and livekit.livekit_api_key and livekit.livekit_api_secret):
            raise typer.BadParameter(
                "Set LIVEKIT_URL, LIVEKIT_API_KEY and LIVEKIT_API_SECRET to use LiveKit"
            )
        from .sessions.livekit import LiveKitSession

        def livekit_factory(ice_policy: IcePolicy) -> TransportSession:
            return LiveKitSession(
                server_url=livekit.livekit_url,
                api_key=livekit.livekit_api_key,
                api_secret=livekit.livekit_api_secret,
                ice_policy=ice_policy,
                room_prefix=livekit.livekit_room_prefix,
            )

        return livekit_factory

    if platform == "daily":
        room_url = settings.daily.daily_room_url
        if not room_url:
            raise typer.BadParameter("Set DAILY_ROOM_URL to use Daily")
        from .sessions.daily import DailySession

        def daily_factory(ice_policy: IcePolicy) -> TransportSession:
            return DailySession(room_url=room_url, ice_policy=ice_policy)

        return daily_factory

    raise typer.BadParameter(f"Unknown platform: {platform}")


def select_tests(registry: TestRegistry, names: list[str], run_all: bool) -> list[str]:
    if run_all:
        return [case.name for case in registry.cases(THROUGHPUT_SUITE, include_explicit=False)]
    for name in names:
        registry.get(name)
    return names


@app.command("list")
def list_tests() -> None:
    """List the available tests."""
    registry = build_default_registry()
    table = Table(title="Network tests")
    table.add_column("Suite")
    table.add_column("Test")
    table.add_column("ICE")
    table.add_column("Explicit")
    table.add_column("Description")
    for case in registry.cases():
        table.add_row(
            case.suite,
            case.name,
            case.ice_policy.value,
            "yes" if case.explicit else "",
            case.description,
        )
    console.print(table)


@app.command()
def run(
    names: list[str] = typer.Argument(None, help="Tests to run (see `list`)"),
    run_all: bool = typer.Option(False, "--all", "-a", help="Run every non-explicit test"),
    platform: str = typer.Option(None, "--platform", "-p", help="livekit or daily"),
    throughput_duration: int = typer.Option(None, "--throughput-duration", help="Sending duration (ms)"),
    bandwidth_duration: int = typer.Option(None, "--bandwidth-duration", help="Polling duration (ms)"),
    latency_duration: int = typer.Option(None, "--latency-duration", help="Probing duration (ms)"),
    latency_interval: int = typer.Option(None, "--latency-interval", help="Probe interval (ms)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run one or more network tests."""
    settings = NetperfRunnerSettings()
    configure_logging(settings, verbose)

    if throughput_duration:
        settings.throughput.throughput_duration_ms = throughput_duration
    if bandwidth_duration:
        settings.bandwidth.bandwidth_duration_ms = bandwidth_duration
    if latency_duration:
        settings.latency.latency_duration_ms = latency_duration
    if latency_interval:
        settings.latency.latency_interval_ms = latency_interval

    registry = build_default_registry()
    try:
        selected = select_tests(registry, names or [], run_all)
    except KeyError as e:
        console.print(f"❌ {e.args[0]}")
        sys.exit(2)
    if not selected:
        console.print("❌ Name at least one test or pass --all")
        sys.exit(2)

    session_factory = create_session_factory(platform or settings.platform, settings)

    async def run_selected() -> bool:
        all_passed = True
        for name in selected:
            console.print(f"🏁 Running {name}...")
            result = await registry.run(name, session_factory, settings)
            if result is None:
                console.print(f"❌ {name}: no result (see errors above)")
                all_passed = False
                continue
            console.print(format_result(result))
            all_passed = all_passed and result.passed
        return all_passed

    try:
        passed = asyncio.run(run_selected())
    except KeyboardInterrupt:
        console.print("\n\n🛑 Tests interrupted by user")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n\n❌ Error: {e}")
        if verbose:
            console.print_exception()
        sys.exit(1)

    sys.exit(0 if passed else 1)


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
