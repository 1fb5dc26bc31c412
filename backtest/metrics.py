from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from engine.models import Trade


@dataclass
class BacktestMetrics:
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    total_pnl: float
    return_pct: float
    max_drawdown_pct: float
    initial_cash: float
    final_equity: float


def compute_metrics(trades: list[Trade], initial_cash: float, final_equity: float) -> BacktestMetrics:
    return_pct = (final_equity - initial_cash) / initial_cash * 100.0 if initial_cash else 0.0
    if not trades:
        return BacktestMetrics(
            total_trades=0,
            winning_trades=0,
            losing_trades=0,
            win_rate=0.0,
            total_pnl=0.0,
            return_pct=return_pct,
            max_drawdown_pct=0.0,
            initial_cash=initial_cash,
            final_equity=final_equity,
        )
    pnl = pd.Series([t.pnl for t in trades], dtype=float)
    # equity curve over closed trades, starting from the initial cash
    curve = pd.concat([pd.Series([initial_cash]), initial_cash + pnl.cumsum()], ignore_index=True)
    peak = curve.cummax()
    drawdown = (curve - peak) / peak * 100.0
    wins = int((pnl > 0).sum())
    losses = int((pnl < 0).sum())
    return BacktestMetrics(
        total_trades=len(trades),
        winning_trades=wins,
        losing_trades=losses,
        win_rate=wins / len(trades) * 100.0,
        total_pnl=float(pnl.sum()),
        return_pct=return_pct,
        max_drawdown_pct=float(-drawdown.min()),
        initial_cash=initial_cash,
        final_equity=final_equity,
    )
