#!/usr/bin/env python3
"""
ADHDOOM — Simulation CLI

Usage:
    python -m tools.sim_cli ladder                       # 1M rounds, all collect levels
    python -m tools.sim_cli ladder --rounds 100000 --cashout 2 5
    python -m tools.sim_cli swipe --depth 0 3 10
    python -m tools.sim_cli slot --rows 3 --cols 4 --volatility high
    python -m tools.sim_cli slot --all --fast            # every grid/volatility, numpy path
    python -m tools.sim_cli all --rounds 200000 --output report.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.game_schema import (
    LadderConfig, SlotConfig, SwipeConfig, Volatility, all_slot_configs,
)
from config.settings import SimSettings
from doom_engine.base import IntegrityError
from tools.montecarlo import (
    MonteCarloValidator, fast_slot_rtp, run_simulation, theoretical_ladder_rtp,
)

logger = logging.getLogger("adhdoom.cli")
console = Console()


def _ladder(args) -> list[dict]:
    cfg = LadderConfig()
    levels = args.cashout or list(SimSettings.LADDER_STRATEGIES)
    console.print(Panel(
        f"[bold]SpinTok ladder[/bold]\n\n"
        f"Rounds : {args.rounds:,}\n"
        f"Seed   : {args.seed}\n"
        f"Theory : RTP ≈ {cfg.target_rtp*100:.2f}% when collecting at L2+",
        title="Ladder Simulation", border_style="cyan",
    ))
    rows = []
    for level in levels:
        res = run_simulation(cfg, args.seed, args.rounds, level)
        flag = "  [green]← target[/green]" if level == 2 else ""
        console.print(res.summary() + flag)
        console.print(f"   Theory     : {theoretical_ladder_rtp(cfg, level)*100:.2f}%\n")
        rows.append(res.to_dict())
    return rows


def _swipe(args) -> list[dict]:
    cfg = SwipeConfig()
    depths = args.depth or list(SimSettings.SWIPE_DEPTHS)
    console.print(Panel(
        f"[bold]Swipe to survive[/bold]\n\n"
        f"Rounds  : {args.rounds:,}\n"
        f"Seed    : {args.seed}\n"
        f"Danger  : {cfg.danger_prob*100:.1f}%   Bonus: {cfg.bonus_prob_given_safe*100:.2f}% "
        f"(×{cfg.bonus_multiplier})   Normal: ×{cfg.normal_multiplier:.5f}",
        title="Swipe Simulation", border_style="cyan",
    ))
    rows = []
    for depth in depths:
        res = run_simulation(cfg, args.seed, args.rounds, depth)
        console.print(res.summary() + "\n")
        rows.append(res.to_dict())
    return rows


def _slot(args) -> list[dict]:
    if args.all:
        configs = all_slot_configs()
    else:
        configs = [SlotConfig(rows=args.rows, cols=args.cols,
                              volatility=Volatility(args.volatility))]

    table = Table(title=f"Slot RTP ({args.rounds:,} spins, seed {args.seed}"
                        f"{', fast' if args.fast else ''})")
    for col in ("Grid", "Volatility", "RTP", "Hit rate", "Max win"):
        table.add_column(col, justify="right")

    rows = []
    for cfg in configs:
        if args.fast:
            res = fast_slot_rtp(cfg, args.seed, args.rounds)
        else:
            res = run_simulation(cfg, args.seed, args.rounds)
        table.add_row(f"{cfg.rows}x{cfg.cols}", cfg.volatility.value,
                      f"{res.rtp*100:.3f}%", f"{res.hit_rate*100:.2f}%",
                      f"{res.max_win_mult:.2f}x")
        rows.append(res.to_dict())
    console.print(table)
    return rows


def _all(args) -> dict:
    mc = MonteCarloValidator(seed=args.seed)
    report = mc.validate_all(n_rounds=args.rounds, fast_slots=args.fast)
    console.print(report.summary())
    return json.loads(report.to_json())


def main(argv=None):
    parser = argparse.ArgumentParser(description="Monte Carlo RTP simulation for ADHDoom modes")
    parser.add_argument("mode", choices=["ladder", "swipe", "slot", "all"])
    parser.add_argument("--rounds", type=int, default=SimSettings.DEFAULT_ROUNDS)
    parser.add_argument("--seed", type=int, default=SimSettings.DEFAULT_SEED)
    parser.add_argument("--cashout", type=int, nargs="*", help="Ladder collect levels")
    parser.add_argument("--depth", type=int, nargs="*", help="Swipe cash-out depths")
    parser.add_argument("--rows", type=int, choices=[3, 4], default=3)
    parser.add_argument("--cols", type=int, choices=[3, 4], default=3)
    parser.add_argument("--volatility", choices=[v.value for v in Volatility], default="med")
    parser.add_argument("--all", action="store_true", help="Slot: every grid/volatility combination")
    parser.add_argument("--fast", action="store_true", help="Slot: vectorized outcome-only RTP")
    parser.add_argument("--output", type=str, default=None, help="Write the results as JSON")
    args = parser.parse_args(argv)

    logging.basicConfig(level=SimSettings.log_level(), format=SimSettings.LOG_FORMAT,
                        datefmt="%H:%M:%S")

    handlers = {"ladder": _ladder, "swipe": _swipe, "slot": _slot, "all": _all}
    try:
        results = handlers[args.mode](args)
    except IntegrityError as e:
        logger.error("simulation aborted: %s", e)
        console.print(f"[bold red]Engine integrity failure:[/bold red] {e}")
        return 2

    if args.output:
        out = Path(args.output)
        if out.parent == Path("."):
            out = SimSettings.report_path(out.name)
        out.write_text(json.dumps(results, indent=2), encoding="utf-8")
        console.print(f"[green]Report written to {out}[/green]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
