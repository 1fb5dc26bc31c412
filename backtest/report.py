from __future__ import annotations

from backtest.metrics import BacktestMetrics
from engine.models import Trade


def render_report(metrics: BacktestMetrics, trades: list[Trade] | None = None) -> str:
    lines = [
        f"Initial cash: ${metrics.initial_cash:.2f}",
        f"Final equity: ${metrics.final_equity:.2f}",
        f"P&L: ${metrics.final_equity - metrics.initial_cash:.2f} ({metrics.return_pct:.2f}%)",
        f"Total trades: {metrics.total_trades}",
        f"Win rate: {metrics.win_rate:.1f}% ({metrics.winning_trades}W/{metrics.losing_trades}L)",
        f"Max drawdown: {metrics.max_drawdown_pct:.2f}%",
    ]
    for i, trade in enumerate(trades or [], start=1):
        lines.append(
            f"Trade {i}: {trade.side.value} {trade.quantity} @ {trade.entry_price:.2f} -> "
            f"{trade.exit_price:.2f} pnl ${trade.pnl:.2f} ({trade.pnl_percentage:.2f}%)"
        )
    return "\n".join(lines)
