"""Terminal client that drives the inventory search coordinator."""
from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from time import perf_counter
from typing import Iterable, Optional

from stocksearch.availability import build_product_label
from stocksearch.backend import InMemoryInventoryFetcher, seed_demo_store
from stocksearch.config import settings
from stocksearch.coordinator import SearchCoordinator
from stocksearch.models import ProductType, SearchState
from stocksearch.transport import HttpInventoryFetcher

MAX_RESULTS = 50
GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

HELP = """Commands:
  <text>          search the current location
  :clear          clear the query (served from the baseline cache)
  :refresh        drop the cache and re-run the current query
  :loc <id>       switch location
  :type <TYPE>    filter by product type (FRAME, SUNGLASSES, CONTACT_LENS, SOLUTION, OTHER, none)
  exit            quit"""


def pretty_print_state(label: str, state: SearchState, elapsed_ms: float, product_type: Optional[ProductType]) -> None:
    color = GREEN if elapsed_ms < 500 else RED
    eta_label = f"{color}{elapsed_ms:.1f} ms{RESET}"
    if state.error is not None:
        print(f"{label} | {RED}{state.error_message}{RESET} | ETA: {eta_label}")
        return
    more = " (more available)" if state.has_more else ""
    print(f"{label} | sellable: {len(state.results)} of {state.total_count}{more} | ETA: {eta_label}")
    if not state.results:
        print("  no matching products")
    for idx, item in enumerate(state.results[:MAX_RESULTS], start=1):
        print(f"  {idx:02d}. {build_product_label(item, product_type)}")


async def run_command(coordinator: SearchCoordinator, line: str) -> bool:
    """Apply one REPL line; returns False when the session should end."""
    if line.lower() in {"exit", "quit"}:
        return False
    started = perf_counter()
    if line == ":clear":
        coordinator.clear_search()
    elif line == ":refresh":
        coordinator.refresh()
    elif line.startswith(":loc"):
        location_id = line[4:].strip() or None
        coordinator.set_parameters(location_id, coordinator.params.product_type)
    elif line.startswith(":type"):
        raw = line[5:].strip().upper()
        product_type = None if raw in {"", "NONE"} else ProductType(raw)
        coordinator.set_parameters(coordinator.params.location_id, product_type)
    elif line in {":help", "?"}:
        print(HELP)
        return True
    else:
        coordinator.set_query(line)
    state = await coordinator.wait_idle()
    elapsed = (perf_counter() - started) * 1000
    label = f"[{coordinator.params.location_id}/{coordinator.params.product_type or 'ALL'}] q={state.query!r}"
    pretty_print_state(label, state, elapsed, coordinator.params.product_type)
    return True


async def interactive_shell(coordinator: SearchCoordinator) -> None:
    print("Interactive inventory search. Type ':help' for commands, 'exit' to quit.")
    while True:
        try:
            line = (await asyncio.to_thread(input, "> ")).strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if not line:
            continue
        try:
            if not await run_command(coordinator, line):
                return
        except ValueError as exc:
            print(f"{RED}{exc}{RESET}")


async def batch_mode(coordinator: SearchCoordinator, file_path: Path) -> None:
    with file_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            command = line.strip()
            if not command:
                continue
            if not await run_command(coordinator, command):
                return


async def run(args: argparse.Namespace) -> int:
    if args.demo:
        fetcher = InMemoryInventoryFetcher(seed_demo_store())
    else:
        fetcher = HttpInventoryFetcher(args.backend)
    product_type = ProductType(args.type.upper()) if args.type else None
    try:
        async with SearchCoordinator(
            fetcher,
            location_id=args.location,
            product_type=product_type,
            debounce_ms=args.debounce,
        ) as coordinator:
            await coordinator.wait_idle()
            if args.batch:
                await batch_mode(coordinator, args.batch)
            elif args.query:
                await run_command(coordinator, args.query)
            else:
                await interactive_shell(coordinator)
    finally:
        if isinstance(fetcher, HttpInventoryFetcher):
            await fetcher.aclose()
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="CLI client for inventory search")
    parser.add_argument("query", nargs="?", help="Query string. If omitted, starts REPL mode.")
    parser.add_argument("--location", default="L1", help="Location id to search in")
    parser.add_argument("--type", help="Product type filter")
    parser.add_argument("--backend", default=settings.api_base_url, help="Inventory API base URL")
    parser.add_argument("--demo", action="store_true", help="Use the built-in in-memory store")
    parser.add_argument("--debounce", type=int, default=settings.debounce_ms, help="Debounce delay in ms")
    parser.add_argument("--batch", type=Path, help="File with queries/commands to execute line by line")
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(level=logging.getLevelName(settings.log_level.upper()), format=LOG_FORMAT, force=True)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
