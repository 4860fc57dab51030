"""
Paper Trading Core - P&L Calculator

Derives realized and unrealized profit/loss, performance metrics and
trading statistics from the fill history. Every value here is
recomputable and never the source of truth.
"""
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any, Tuple, Iterable

from paper_core.core.trading.models import OrderSide, SimulatedOrder, quantize_money
from paper_core.core.trading.position_tracker import Position


TWO_PLACES = Decimal("0.01")


def _pct(part: Decimal, whole: Decimal) -> Decimal:
    if whole == 0:
        return Decimal("0")
    return (part / whole * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass
class RealizedPnL:
    """Realized P&L from closing fills."""
    total: Decimal = Decimal("0")
    gross_profit: Decimal = Decimal("0")
    gross_loss: Decimal = Decimal("0")
    closed_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: Decimal = Decimal("0")
    avg_win: Decimal = Decimal("0")
    avg_loss: Decimal = Decimal("0")
    profit_factor: Decimal = Decimal("0")
    largest_win: Decimal = Decimal("0")
    largest_loss: Decimal = Decimal("0")


@dataclass
class UnrealizedPnL:
    """Unrealized P&L from open positions at the latest marks."""
    total: Decimal = Decimal("0")
    by_position: Dict[str, Decimal] = field(default_factory=dict)
    positions_in_profit: int = 0
    positions_in_loss: int = 0
    unpriced: List[str] = field(default_factory=list)


@dataclass
class Drawdown:
    """Peak-to-trough equity decline."""
    max_drawdown: Decimal = Decimal("0")
    max_drawdown_pct: Decimal = Decimal("0")
    current_drawdown: Decimal = Decimal("0")
    current_drawdown_pct: Decimal = Decimal("0")
    peak_equity: Decimal = Decimal("0")


@dataclass
class PerformanceMetrics:
    """Aggregate portfolio performance."""
    initial_balance: Decimal
    total_trades: int
    realized: RealizedPnL
    unrealized: UnrealizedPnL
    drawdown: Drawdown
    total_fees: Decimal
    equity: Decimal
    total_return: Decimal
    total_return_pct: Decimal

    def to_dict(self) -> Dict[str, Any]:
        realized = self.realized
        return {
            "initial_balance": str(self.initial_balance),
            "total_trades": self.total_trades,
            "closed_trades": realized.closed_trades,
            "winning_trades": realized.winning_trades,
            "losing_trades": realized.losing_trades,
            "win_rate": str(realized.win_rate),
            "avg_win": str(realized.avg_win),
            "avg_loss": str(realized.avg_loss),
            "profit_factor": str(realized.profit_factor),
            "realized_pnl": str(realized.total),
            "unrealized_pnl": str(self.unrealized.total),
            "total_fees": str(self.total_fees),
            "max_drawdown": str(self.drawdown.max_drawdown),
            "max_drawdown_pct": str(self.drawdown.max_drawdown_pct),
            "current_drawdown": str(self.drawdown.current_drawdown),
            "current_drawdown_pct": str(self.drawdown.current_drawdown_pct),
            "equity": str(self.equity),
            "total_return": str(self.total_return),
            "total_return_pct": str(self.total_return_pct),
        }


def closing_fills(fills: Iterable[SimulatedOrder]) -> List[SimulatedOrder]:
    """Fills that reduced existing exposure, found by replaying net sizes."""
    sizes: Dict[str, Decimal] = {}
    closing = []
    for fill in sorted(fills, key=lambda f: f.sequence):
        old = sizes.get(fill.symbol, Decimal("0"))
        signed = fill.quantity * fill.side.sign
        if old != 0 and (old > 0) != (signed > 0):
            closing.append(fill)
        sizes[fill.symbol] = old + signed
    return closing


class PnLCalculator:
    """
    P&L Calculator

    Responsible for:
    - Realized P&L statistics (win rate, profit factor)
    - Unrealized P&L at mark prices
    - Equity curve drawdown
    - Trading statistics
    """

    def calculate_realized_pnl(self, fills: List[SimulatedOrder]) -> RealizedPnL:
        """
        Calculate realized P&L statistics from closing fills.

        Win rate is a percentage of closing fills; break-even closes count
        toward neither wins nor losses.
        """
        closes = closing_fills(fills)
        if not closes:
            return RealizedPnL()

        total_pnl = Decimal("0")
        gross_profit = Decimal("0")
        gross_loss = Decimal("0")
        winning_trades = 0
        losing_trades = 0
        largest_win = Decimal("0")
        largest_loss = Decimal("0")

        for fill in closes:
            pnl = fill.realized_pnl
            total_pnl += pnl

            if pnl > 0:
                gross_profit += pnl
                winning_trades += 1
                largest_win = max(largest_win, pnl)
            elif pnl < 0:
                gross_loss += abs(pnl)
                losing_trades += 1
                largest_loss = max(largest_loss, abs(pnl))

        closed_trades = len(closes)
        avg_win = gross_profit / winning_trades if winning_trades else Decimal("0")
        avg_loss = gross_loss / losing_trades if losing_trades else Decimal("0")
        profit_factor = gross_profit / gross_loss if gross_loss > 0 else Decimal("0")

        return RealizedPnL(
            total=total_pnl,
            gross_profit=gross_profit,
            gross_loss=gross_loss,
            closed_trades=closed_trades,
            winning_trades=winning_trades,
            losing_trades=losing_trades,
            win_rate=_pct(Decimal(winning_trades), Decimal(closed_trades)),
            avg_win=quantize_money(avg_win),
            avg_loss=quantize_money(avg_loss),
            profit_factor=profit_factor.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
            largest_win=largest_win,
            largest_loss=largest_loss
        )

    def calculate_unrealized_pnl(
        self,
        positions: List[Position],
        marks: Dict[str, Decimal]
    ) -> UnrealizedPnL:
        """Unrealized P&L per position; positions without a mark are listed as unpriced."""
        result = UnrealizedPnL()
        for position in positions:
            mark = marks.get(position.symbol)
            if mark is None:
                result.unpriced.append(position.symbol)
                continue

            pnl = position.unrealized_pnl(mark)
            result.by_position[position.symbol] = pnl
            result.total += pnl
            if pnl > 0:
                result.positions_in_profit += 1
            elif pnl < 0:
                result.positions_in_loss += 1
        return result

    def equity_curve(
        self,
        fills: List[SimulatedOrder],
        initial_balance: Decimal,
        unrealized_total: Decimal = Decimal("0")
    ) -> List[Decimal]:
        """
        Equity after each fill: initial + cumulative realized - cumulative fees.

        The final point also carries the current unrealized P&L.
        """
        equity = initial_balance
        curve = [equity]
        for fill in sorted(fills, key=lambda f: f.sequence):
            equity += fill.realized_pnl - fill.fee
            curve.append(equity)
        if unrealized_total:
            curve.append(equity + unrealized_total)
        return curve

    def calculate_drawdown(self, curve: List[Decimal]) -> Drawdown:
        """Largest peak-to-trough decline and the decline from the latest peak."""
        if not curve:
            return Drawdown()

        peak = curve[0]
        max_dd = Decimal("0")
        max_dd_pct = Decimal("0")
        for equity in curve:
            if equity > peak:
                peak = equity
            decline = peak - equity
            if decline > max_dd:
                max_dd = decline
                max_dd_pct = _pct(decline, peak)

        current = peak - curve[-1]
        return Drawdown(
            max_drawdown=quantize_money(max_dd),
            max_drawdown_pct=max_dd_pct,
            current_drawdown=quantize_money(current),
            current_drawdown_pct=_pct(current, peak),
            peak_equity=quantize_money(peak)
        )

    def calculate_performance(
        self,
        fills: List[SimulatedOrder],
        initial_balance: Decimal,
        positions: Optional[List[Position]] = None,
        marks: Optional[Dict[str, Decimal]] = None
    ) -> PerformanceMetrics:
        """
        Aggregate performance over the full fill history.

        Args:
            fills: Complete fill history for the account
            initial_balance: Starting balance the returns are measured against
            positions: Open positions for unrealized P&L
            marks: Latest mark price per symbol

        Returns:
            PerformanceMetrics
        """
        realized = self.calculate_realized_pnl(fills)
        unrealized = self.calculate_unrealized_pnl(positions or [], marks or {})
        total_fees = sum((f.fee for f in fills), Decimal("0"))

        curve = self.equity_curve(fills, initial_balance, unrealized.total)
        drawdown = self.calculate_drawdown(curve)

        equity = curve[-1]
        total_return = equity - initial_balance

        return PerformanceMetrics(
            initial_balance=initial_balance,
            total_trades=len(fills),
            realized=realized,
            unrealized=unrealized,
            drawdown=drawdown,
            total_fees=total_fees,
            equity=quantize_money(equity),
            total_return=quantize_money(total_return),
            total_return_pct=_pct(total_return, initial_balance)
        )

    def get_trade_statistics(self, fills: List[SimulatedOrder]) -> Dict[str, Any]:
        """
        Get trading statistics.

        Returns counts by side, volume and the most traded symbol.
        """
        if not fills:
            return {
                "total_trades": 0,
                "buy_trades": 0,
                "sell_trades": 0,
                "total_volume": Decimal("0"),
                "avg_trade_size": Decimal("0"),
                "most_traded_symbol": None,
                "symbols_traded": 0,
            }

        buy_trades = [f for f in fills if f.side == OrderSide.BUY]
        total_volume = sum((f.notional for f in fills), Decimal("0"))
        symbol_counts = Counter(f.symbol for f in fills)
        most_traded: Tuple[str, int] = symbol_counts.most_common(1)[0]

        return {
            "total_trades": len(fills),
            "buy_trades": len(buy_trades),
            "sell_trades": len(fills) - len(buy_trades),
            "total_volume": total_volume,
            "avg_trade_size": quantize_money(total_volume / len(fills)),
            "most_traded_symbol": most_traded[0],
            "symbols_traded": len(symbol_counts),
        }
