"""
ADHDOOM — Grid Construction

Builds the final symbol grid so it matches a pre-decided OutcomeDraw.

    1. Fill every cell with next_int(symbols_count), row-major.
    2. Force the payline row:
         LOSE    → repair loop until no left-anchored 3/4 run remains
         MATCH_3 → cols 0-2 = symbol; a matching 4th column is rotated
         MATCH_4 → cols 0-3 = symbol
    3. Re-evaluate the payline; any disagreement raises IntegrityError.
"""

from __future__ import annotations

import logging

from config.game_schema import SlotConfig
from doom_engine.base import IntegrityError, OutcomeDraw, OutcomeKind
from doom_engine.rng import RandomSource

logger = logging.getLogger("adhdoom.grid")

Grid = list[list[int]]


def evaluate_payline(grid: Grid, row: int, cols: int) -> OutcomeKind:
    """Left-anchored runs only: 4-match (4 columns), else 3-match, else LOSE."""
    r = grid[row]
    if cols == 4 and r[0] == r[1] == r[2] == r[3]:
        return OutcomeKind.MATCH_4
    if r[0] == r[1] == r[2]:
        return OutcomeKind.MATCH_3
    return OutcomeKind.LOSE


def _repair_for_lose(grid: Grid, row: int, cols: int, symbols_count: int) -> int:
    """Nudge cells in place until the payline is a LOSE. Returns iterations used.

    A MATCH_4 bumps the last column (leaving at most a MATCH_3); a MATCH_3
    bumps column 2, which breaks the run. Each bump changes the cell, so
    the loop ends well inside one symbol cycle.
    """
    max_iter = symbols_count
    iterations = 0
    kind = evaluate_payline(grid, row, cols)
    while kind is not OutcomeKind.LOSE:
        if iterations >= max_iter:
            raise IntegrityError(
                f"LOSE repair did not converge in {max_iter} iterations: row={grid[row]}"
            )
        col = cols - 1 if kind is OutcomeKind.MATCH_4 else 2
        grid[row][col] = (grid[row][col] + 1) % symbols_count
        iterations += 1
        kind = evaluate_payline(grid, row, cols)
    return iterations


def build_grid(config: SlotConfig, rng: RandomSource, outcome: OutcomeDraw) -> Grid:
    rows, cols, n_sym = config.rows, config.cols, config.symbols_count
    row = config.payline_row if outcome.payline_row is None else outcome.payline_row
    kind = outcome.kind

    grid = [[rng.next_int(n_sym) for _ in range(cols)] for _ in range(rows)]

    if kind is OutcomeKind.LOSE:
        _repair_for_lose(grid, row, cols, n_sym)
    elif kind is OutcomeKind.MATCH_3:
        sym = outcome.symbol
        grid[row][0] = grid[row][1] = grid[row][2] = sym
        if cols == 4 and grid[row][3] == sym:
            grid[row][3] = (sym + 1) % n_sym
    elif kind is OutcomeKind.MATCH_4:
        if cols != 4:
            raise IntegrityError(f"MATCH_4 outcome on a {cols}-column grid")
        for c in range(4):
            grid[row][c] = outcome.symbol
    else:
        raise IntegrityError(f"Outcome kind {kind.value} has no grid form")

    actual = evaluate_payline(grid, row, cols)
    if actual is not kind:
        logger.error("grid assertion failed: expected %s, got %s", kind.value, actual.value)
        raise IntegrityError(f"Grid assertion failed: expected {kind.value}, got {actual.value}")
    return grid


class GridBuilder:
    """Binds a slot config so callers can build grids without passing it around."""

    def __init__(self, config: SlotConfig):
        self.config = config

    def build(self, rng: RandomSource, outcome: OutcomeDraw) -> Grid:
        return build_grid(self.config, rng, outcome)

    def evaluate(self, grid: Grid) -> OutcomeKind:
        return evaluate_payline(grid, self.config.payline_row, self.config.cols)
