from __future__ import annotations

from loguru import logger

from engine.errors import LedgerInvariantError
from engine.models import BuyEvent, Position, ProposedTrade, SellEvent, Trade, TradeEvent


class PositionLedger:
    def __init__(self, symbol: str, initial_cash: float) -> None:
        self.symbol = symbol
        self.initial_cash = initial_cash
        self.cash = initial_cash
        self._position: Position | None = None
        self._trades: list[Trade] = []

    @property
    def position(self) -> Position | None:
        return self._position

    @property
    def trades(self) -> tuple[Trade, ...]:
        return tuple(self._trades)

    @property
    def realized_pnl(self) -> float:
        return sum(t.pnl for t in self._trades)

    def unrealized_pnl(self, mark_price: float) -> float:
        pos = self._position
        if pos is None:
            return 0.0
        return (mark_price - pos.entry_price) * pos.quantity * pos.side.sign

    def equity(self, mark_price: float) -> float:
        pos = self._position
        if pos is None:
            return self.cash
        return self.cash + pos.side.sign * pos.quantity * mark_price

    def commit(self, proposed: ProposedTrade) -> TradeEvent:
        if proposed.quantity <= 0 or proposed.price <= 0:
            raise LedgerInvariantError(f"Cannot commit non-positive trade: {proposed}")
        pos = self._position
        if not proposed.closes_position:
            if pos is not None:
                raise LedgerInvariantError(f"Entry while {pos.side.value} position is open")
            return self._open(proposed)
        if pos is None:
            raise LedgerInvariantError("Exit committed with no open position")
        if not proposed.side.closes(pos.side):
            raise LedgerInvariantError(f"{proposed.side.value} cannot close a {pos.side.value} position")
        return self._close(proposed)

    def _open(self, proposed: ProposedTrade) -> BuyEvent:
        side = proposed.side.opens
        self.cash -= side.sign * proposed.price * proposed.quantity
        self._position = Position(
            side=side,
            entry_price=proposed.price,
            quantity=proposed.quantity,
            entry_time=proposed.timestamp,
        )
        logger.info("Opened {} {} {} @ {}", side.value, proposed.quantity, self.symbol, proposed.price)
        return BuyEvent(
            symbol=self.symbol,
            side=side,
            price=proposed.price,
            quantity=proposed.quantity,
            timestamp=proposed.timestamp,
        )

    def _close(self, proposed: ProposedTrade) -> SellEvent:
        pos = self._position
        # exits always flatten the whole position
        qty = pos.quantity
        pnl = (proposed.price - pos.entry_price) * qty * pos.side.sign
        self.cash += pos.side.sign * proposed.price * qty
        trade = Trade(
            symbol=self.symbol,
            side=pos.side,
            entry_price=pos.entry_price,
            exit_price=proposed.price,
            quantity=qty,
            entry_time=pos.entry_time,
            exit_time=proposed.timestamp,
            pnl=pnl,
            pnl_percentage=pnl / (pos.entry_price * qty) * 100.0,
        )
        self._trades.append(trade)
        self._position = None
        logger.info("Closed {} {} @ {} pnl={:.2f}", pos.side.value, self.symbol, proposed.price, pnl)
        return SellEvent(trade=trade)
