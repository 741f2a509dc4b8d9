#!/usr/bin/env python3
"""Reboot the router from a terminal and watch it come back."""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from reroute import config
from reroute.orchestrator import RebootOrchestrator
from reroute.state import OperationKind


class Colors:
    GREEN = '\033[92m'; RED = '\033[91m'; BLUE = '\033[94m'
    YELLOW = '\033[93m'; CYAN = '\033[96m'; RESET = '\033[0m'; BOLD = '\033[1m'

    @staticmethod
    def disable():
        for attr in ['GREEN', 'RED', 'BLUE', 'YELLOW', 'CYAN', 'RESET', 'BOLD']:
            setattr(Colors, attr, '')


if not sys.stdout.isatty():
    Colors.disable()


def progress_bar(fraction: float, width: int = 25) -> str:
    filled = int(fraction * width)
    return Colors.GREEN + "█" * filled + Colors.RESET + "░" * (width - filled)


def print_notification(title: str, body: str):
    color = Colors.GREEN if "back" in title.lower() else Colors.RED
    print(f"\n{color}🔔 {title}{Colors.RESET}: {body}")


def print_debug_hint(log_path: str):
    print(f"{Colors.YELLOW}🪵 Follow the run log with: {Colors.CYAN}tail -f {log_path}{Colors.RESET}")


class StatusPrinter:
    """Prints a line whenever something a user would care about changes."""

    def __init__(self):
        self._last_key = None
        self._last_percent = -1

    def __call__(self, orchestrator: RebootOrchestrator):
        op = orchestrator.operation
        key = (op.kind, orchestrator.starting_countdown, orchestrator.internet_status)
        if key != self._last_key:
            self._last_key = key
            if op.kind is OperationKind.STARTING:
                print(f"  {Colors.YELLOW}⏳ Rebooting in {orchestrator.starting_countdown}s "
                      f"(Ctrl-C to cancel){Colors.RESET}")
            elif op.kind is OperationKind.REBOOTING and orchestrator.progress_fraction == 0:
                print(f"  {Colors.BLUE}🔄 Logging in and sending reboot...{Colors.RESET}")

        percent = int(orchestrator.progress_fraction * 100)
        if op.kind is OperationKind.REBOOTING and percent // 10 != self._last_percent // 10:
            self._last_percent = percent
            eta = orchestrator.eta_seconds()
            eta_text = f" ~{eta:.0f}s left" if eta else ""
            print(f"  {progress_bar(orchestrator.progress_fraction)} {percent:>3}%{eta_text}")


async def run(settings: config.Settings, debug: bool) -> int:
    orchestrator = RebootOrchestrator(
        settings,
        notifier=print_notification,
        debug_hook=print_debug_hint,
    )
    orchestrator.add_listener(StatusPrinter())
    orchestrator.start()
    try:
        orchestrator.request_reboot(debug_mode=debug)
        try:
            await orchestrator.join()
        except asyncio.CancelledError:
            # asyncio.run cancels this task on Ctrl-C.
            if orchestrator.cancel():
                print(f"\n{Colors.YELLOW}Reboot cancelled.{Colors.RESET}")
            elif orchestrator.operation.kind is OperationKind.REBOOTING:
                print(f"\n{Colors.YELLOW}Reboot already sent; stopped waiting for the router.{Colors.RESET}")
            raise
    finally:
        await orchestrator.shutdown()

    print(f"\n{Colors.BOLD}📊 Summary{Colors.RESET}")
    print("━" * 20)
    print(orchestrator.diagnostics())
    print(f"Next estimate: {orchestrator.estimated_duration_seconds:.0f}s")
    print(f"Run log: {orchestrator.run_log.path}")
    return 1 if orchestrator.operation.kind is OperationKind.FAILED else 0


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Reboot the router via its web UI and wait for recovery.")
    p.add_argument("--host", help="Router IP/host, e.g. 192.168.1.1")
    p.add_argument("--username", help="Router admin username")
    p.add_argument("--password", help="Router admin password")
    p.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompt")
    p.add_argument("--debug", action="store_true", help="Print where the run log is written")
    p.add_argument("--no-notify", action="store_true", help="Do not announce recovery")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def build_settings(args: argparse.Namespace) -> config.Settings:
    settings = config.Settings.from_env()
    if args.host:
        settings.router_host = args.host
    if args.username:
        settings.username = args.username
    if args.password:
        settings.password = args.password
    if args.no_notify:
        settings.notify_on_recovery = False
    return settings


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')

    settings = build_settings(args)

    print(f"\n{Colors.BOLD}🔄 ReRoute Router Reboot Utility{Colors.RESET}")
    print("━" * 50)

    if settings.ask_confirm_before_reboot and not args.force:
        response = input(
            f"Are you sure you want to reboot the router at "
            f"{Colors.CYAN}{settings.router_host}{Colors.RESET}? (yes/no): "
        )
        if response.lower() not in ['yes', 'y']:
            print(f"{Colors.YELLOW}Reboot cancelled.{Colors.RESET}")
            return 0
    elif args.force:
        print(f"{Colors.YELLOW}⚡ Force mode: Skipping confirmation prompt{Colors.RESET}")

    try:
        return asyncio.run(run(settings, args.debug))
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Operation cancelled{Colors.RESET}")
        return 130


if __name__ == '__main__':
    sys.exit(main())
