#!/usr/bin/env python3
"""
FAIRENGINE — Provably Fair CLI

Usage:
    python -m tools.fairness_cli seeds
    python -m tools.fairness_cli rows --server-seed S --client-seed C --rows 10
    python -m tools.fairness_cli coin --server-seed S --client-seed C --nonce 7
    python -m tools.fairness_cli verify --audit audit.json --rows-file rows.json
    python -m tools.fairness_cli simulate --rounds 20000 --json
"""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.settings import FairnessConfig, configure_logging
from fair_engine import (
    FairnessError, RoundRequest, build_rows, commit, cumulative_multiplier,
    derive_coin_outcome, format_multiplier, generate_seeds, load_verification_data,
    verify_audit_record,
)

console = Console()


def _add_round_args(p: argparse.ArgumentParser):
    p.add_argument("--min-tiles", type=int, default=FairnessConfig.MIN_TILES)
    p.add_argument("--max-tiles", type=int, default=FairnessConfig.MAX_TILES)
    p.add_argument("--bombs", type=int, default=FairnessConfig.BOMBS_PER_ROW, help="Bombs per row")
    p.add_argument("--edge", type=float, default=FairnessConfig.HOUSE_EDGE, help="House edge (0.05 = 5%%)")
    p.add_argument("--nonce-base", type=int, default=0)


def _request_from(args, **extra) -> RoundRequest:
    return RoundRequest.build(
        min_tiles=args.min_tiles,
        max_tiles=args.max_tiles,
        bombs_per_row=args.bombs,
        house_edge=args.edge,
        nonce_base=args.nonce_base,
        **extra,
    )


def _cmd_seeds(args) -> int:
    seeds = generate_seeds(client_seed=args.client_seed)
    body = (f"[bold]Commitment:[/bold] {commit(seeds)}\n"
            f"[bold]Client seed:[/bold] {seeds.client_seed}")
    if args.reveal:
        body += f"\n[bold]Server seed:[/bold] {seeds.server_seed}"
    console.print(Panel(body, title="🔐 New Seed Pair", border_style="cyan"))
    return 0


def _cmd_rows(args) -> int:
    request = _request_from(args, row_count=args.rows, max_total_multiplier=args.cap)
    rows = build_rows(args.server_seed, args.client_seed, request)

    if args.json:
        print(json.dumps([r.to_dict() for r in rows], indent=2))
        return 0

    table = Table(title=f"Round ({len(rows)}/{request.row_count} rows)")
    table.add_column("Row", justify="right")
    table.add_column("Nonce", justify="right")
    table.add_column("Tiles", justify="right")
    table.add_column("Bombs")
    table.add_column("Row ×", justify="right")
    table.add_column("Total ×", justify="right")
    for r in rows:
        total = cumulative_multiplier(rows, r.row_index + 1, request.house_edge)
        table.add_row(str(r.row_index), str(r.nonce), str(r.tile_count),
                      ", ".join(str(b) for b in r.bomb_indices),
                      format_multiplier(r.row_multiplier), format_multiplier(total))
    console.print(table)
    return 0


def _cmd_coin(args) -> int:
    table = Table(title="Coin Flips")
    table.add_column("Nonce", justify="right")
    table.add_column("Side")
    table.add_column("Value", justify="right")
    table.add_column("Hash")
    for nonce in range(args.nonce, args.nonce + args.count):
        flip = derive_coin_outcome(args.server_seed, args.client_seed, nonce)
        table.add_row(str(nonce), flip.side, str(flip.random_value), flip.derivation_hash[:16] + "…")
    console.print(table)
    return 0


def _cmd_verify(args) -> int:
    record = load_verification_data(Path(args.audit).read_text())
    rows = json.loads(Path(args.rows_file).read_text())
    request = _request_from(args, row_count=len(rows)) if args.with_bounds else None
    report = verify_audit_record(record, rows, request)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    elif not report.hash_matches:
        console.print(f"[bold red]❌ {report.error}[/bold red]")
    else:
        for item in report.items:
            icon = "✅" if item.valid else "❌"
            console.print(f"  {icon} row {item.row_index} (nonce {item.nonce}): "
                          f"tiles={item.recomputed_tile_count} "
                          f"bombs={list(item.recomputed_bomb_indices)}")
        verdict = "[green]✅ Round verified[/green]" if report.valid else "[red]❌ Round does NOT verify[/red]"
        console.print(verdict)
    return 0 if report.valid else 1


def _cmd_simulate(args) -> int:
    from tools.fairness_montecarlo import FairnessMonteCarlo

    mc = FairnessMonteCarlo(seed=args.seed, house_edge=args.edge, min_tiles=args.min_tiles,
                            max_tiles=args.max_tiles, bombs_per_row=args.bombs)
    console.print(f"[cyan]Running {args.rounds:,}-round fairness simulation...[/cyan]")
    report = mc.validate_all(n_rounds=args.rounds)
    print(report.to_json() if args.json else report.summary())
    return 0 if report.overall_pass else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Provably fair bomb / coin flip engine")
    parser.add_argument("--log-level", type=str, default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("seeds", help="Generate a seed pair and print its commitment")
    p.add_argument("--client-seed", type=str, default=None)
    p.add_argument("--reveal", action="store_true", help="Also print the server seed")

    p = sub.add_parser("rows", help="Derive the rows of a bomb round")
    p.add_argument("--server-seed", type=str, required=True)
    p.add_argument("--client-seed", type=str, required=True)
    p.add_argument("--rows", type=int, default=FairnessConfig.MAX_ROWS)
    p.add_argument("--cap", type=float, default=FairnessConfig.MAX_TOTAL_MULTIPLIER,
                   help="Max cumulative multiplier (0 = uncapped)")
    p.add_argument("--json", action="store_true")
    _add_round_args(p)

    p = sub.add_parser("coin", help="Derive coin flip outcomes")
    p.add_argument("--server-seed", type=str, required=True)
    p.add_argument("--client-seed", type=str, required=True)
    p.add_argument("--nonce", type=int, default=0)
    p.add_argument("--count", type=int, default=1)

    p = sub.add_parser("verify", help="Verify a revealed round")
    p.add_argument("--audit", type=str, required=True, help="Exported audit JSON")
    p.add_argument("--rows-file", type=str, required=True, help="JSON list of rows shown to the player")
    p.add_argument("--with-bounds", action="store_true",
                   help="Check every row against these round parameters instead of the bounds each row recorded")
    p.add_argument("--json", action="store_true")
    _add_round_args(p)

    p = sub.add_parser("simulate", help="Monte Carlo fairness checks")
    p.add_argument("--rounds", type=int, default=10_000)
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--json", action="store_true")
    _add_round_args(p)

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    handlers = {
        "seeds": _cmd_seeds,
        "rows": _cmd_rows,
        "coin": _cmd_coin,
        "verify": _cmd_verify,
        "simulate": _cmd_simulate,
    }
    try:
        return handlers[args.command](args)
    except FairnessError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        return 2


if __name__ == "__main__":
    sys.exit(main())
