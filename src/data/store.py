"""
Persist option positions and their trades (SQLite).

Every write validates against the ledger rules before the transaction is
opened, so a rejected trade never leaves partial state behind.
"""

import sqlite3
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path

from pnl_core.contracts import (
    Direction,
    OptionPosition,
    OptionType,
    PositionStatus,
    TradeEvent,
)
from pnl_core.ledger import (
    aggregate,
    sort_trades,
    validate_new_trade,
    validate_trade_removal,
)
from pnl_core.refresh import PositionLedger
from pnl_core.symbols import normalize_symbol


class PositionNotFoundError(LookupError):
    """No position with the requested id."""


class DuplicatePositionError(ValueError):
    """A position for the same contract (symbol, direction, type, strike, expiry) exists."""


def _new_id() -> str:
    return uuid.uuid4().hex


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_when(text: str) -> date | datetime:
    # Plain dates are stored as YYYY-MM-DD, datetimes with a time part
    if len(text) == 10:
        return date.fromisoformat(text)
    return datetime.fromisoformat(text)


class TradeStore:
    """SQLite-backed position + trade storage. One file per path."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path))

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS positions (
                    id TEXT PRIMARY KEY,
                    symbol TEXT NOT NULL,
                    direction TEXT NOT NULL,
                    option_type TEXT NOT NULL,
                    strike REAL NOT NULL,
                    expiry TEXT NOT NULL,
                    status TEXT NOT NULL,
                    quote_code TEXT,
                    last_stock_price REAL,
                    close_stock_price REAL,
                    UNIQUE (symbol, direction, option_type, strike, expiry)
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS trades (
                    id TEXT PRIMARY KEY,
                    position_id TEXT NOT NULL REFERENCES positions(id),
                    trade_type TEXT NOT NULL,
                    contracts INTEGER NOT NULL,
                    premium REAL NOT NULL,
                    trade_date TEXT NOT NULL,
                    shares_per_contract INTEGER NOT NULL,
                    fee REAL NOT NULL,
                    margin_percent REAL,
                    stock_price REAL,
                    created_at TEXT NOT NULL
                )
                """
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_trades_position ON trades (position_id)")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_position(self, position_id: str) -> OptionPosition:
        with self._conn() as c:
            row = c.execute(
                "SELECT id, symbol, direction, option_type, strike, expiry, status, "
                "quote_code, last_stock_price, close_stock_price FROM positions WHERE id = ?",
                (position_id,),
            ).fetchone()
        if row is None:
            raise PositionNotFoundError(f"Position not found: {position_id}")
        return self._row_to_position(row)

    def find_position(
        self,
        symbol: str,
        direction: Direction,
        option_type: OptionType,
        strike: float,
        expiry: date,
    ) -> OptionPosition | None:
        with self._conn() as c:
            row = c.execute(
                "SELECT id, symbol, direction, option_type, strike, expiry, status, "
                "quote_code, last_stock_price, close_stock_price FROM positions "
                "WHERE symbol = ? AND direction = ? AND option_type = ? AND strike = ? AND expiry = ?",
                (normalize_symbol(symbol), direction.value, option_type.value, strike, expiry.isoformat()),
            ).fetchone()
        return self._row_to_position(row) if row else None

    def list_positions(self, status: PositionStatus | None = None) -> list[OptionPosition]:
        """Positions ordered by expiry, then symbol."""
        q = (
            "SELECT id, symbol, direction, option_type, strike, expiry, status, "
            "quote_code, last_stock_price, close_stock_price FROM positions"
        )
        params: list = []
        if status is not None:
            q += " WHERE status = ?"
            params.append(status.value)
        q += " ORDER BY expiry ASC, symbol ASC"
        with self._conn() as c:
            rows = c.execute(q, params).fetchall()
        return [self._row_to_position(r) for r in rows]

    def get_trades(self, position_id: str) -> list[TradeEvent]:
        """Trades for a position in ledger order (trade date, then creation time)."""
        with self._conn() as c:
            rows = c.execute(
                "SELECT id, trade_type, contracts, premium, trade_date, shares_per_contract, "
                "fee, margin_percent, stock_price, created_at FROM trades WHERE position_id = ?",
                (position_id,),
            ).fetchall()
        return sort_trades(self._row_to_trade(r) for r in rows)

    def get_ledger(self, position_id: str) -> PositionLedger:
        return PositionLedger(self.get_position(position_id), self.get_trades(position_id))

    def list_ledgers(self, status: PositionStatus | None = None) -> list[PositionLedger]:
        return [
            PositionLedger(p, self.get_trades(p.id))
            for p in self.list_positions(status)
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def open_position(self, position: OptionPosition, first_trade: TradeEvent) -> tuple[OptionPosition, TradeEvent]:
        """Create a position together with its opening trade.

        Raises DuplicatePositionError if the contract is already tracked and
        LedgerError if the trade cannot open a position.
        """
        position = replace(
            position,
            id=position.id or _new_id(),
            symbol=normalize_symbol(position.symbol),
            status=PositionStatus.OPEN,
        )
        if self.find_position(
            position.symbol, position.direction, position.option_type, position.strike, position.expiry
        ):
            raise DuplicatePositionError(
                f"Position already exists: {position.symbol} {position.direction.value} "
                f"{position.option_type.value} {position.strike} {position.expiry}"
            )
        trade = self._stamp(first_trade)
        validate_new_trade(position, [], trade)

        with self._conn() as c:
            c.execute(
                """
                INSERT INTO positions (id, symbol, direction, option_type, strike, expiry, status,
                                       quote_code, last_stock_price, close_stock_price)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    position.id, position.symbol, position.direction.value,
                    position.option_type.value, position.strike, position.expiry.isoformat(),
                    position.status.value, position.quote_code,
                    position.last_stock_price, position.close_stock_price,
                ),
            )
            self._insert_trade(c, position.id, trade)
        return position, trade

    def add_trade(
        self,
        position_id: str,
        trade: TradeEvent,
    ) -> tuple[TradeEvent, PositionStatus]:
        """Validate and append a trade; returns the stored trade and the resulting status."""
        position = self.get_position(position_id)
        existing = self.get_trades(position_id)
        trade = self._stamp(trade)
        validate_new_trade(position, existing, trade)

        totals = aggregate([*existing, trade])
        status = PositionStatus.CLOSED if totals.net_contracts == 0 else position.status
        close_price = position.close_stock_price
        if status is PositionStatus.CLOSED and trade.stock_price is not None:
            close_price = trade.stock_price

        with self._conn() as c:
            self._insert_trade(c, position_id, trade)
            c.execute(
                "UPDATE positions SET status = ?, close_stock_price = ?, "
                "last_stock_price = COALESCE(?, last_stock_price) WHERE id = ?",
                (status.value, close_price, trade.stock_price, position_id),
            )
        return trade, status

    def remove_trade(self, position_id: str, trade_id: str) -> PositionStatus:
        """Delete one trade if the remaining ledger stays valid.

        A Closed position reopens when contracts remain; an Open one closes when
        none do.
        """
        position = self.get_position(position_id)
        remaining = validate_trade_removal(self.get_trades(position_id), trade_id)
        net = aggregate(remaining).net_contracts
        status = position.status
        if status is PositionStatus.CLOSED and net > 0:
            status = PositionStatus.OPEN
        elif status is PositionStatus.OPEN and remaining and net == 0:
            status = PositionStatus.CLOSED
        with self._conn() as c:
            c.execute("DELETE FROM trades WHERE id = ? AND position_id = ?", (trade_id, position_id))
            c.execute("UPDATE positions SET status = ? WHERE id = ?", (status.value, position_id))
        return status

    def delete_position(self, position_id: str) -> int:
        """Delete a position and all its trades. Returns the number of trades removed."""
        self.get_position(position_id)
        with self._conn() as c:
            cur = c.execute("DELETE FROM trades WHERE position_id = ?", (position_id,))
            c.execute("DELETE FROM positions WHERE id = ?", (position_id,))
        return cur.rowcount

    def update_status(self, position_id: str, status: PositionStatus) -> None:
        self.get_position(position_id)
        with self._conn() as c:
            c.execute("UPDATE positions SET status = ? WHERE id = ?", (status.value, position_id))

    def record_stock_price(
        self,
        position_id: str,
        *,
        last_stock_price: float | None = None,
        close_stock_price: float | None = None,
    ) -> OptionPosition:
        """Store underlying prices used to settle expired positions."""
        self.get_position(position_id)
        with self._conn() as c:
            c.execute(
                "UPDATE positions SET last_stock_price = COALESCE(?, last_stock_price), "
                "close_stock_price = COALESCE(?, close_stock_price) WHERE id = ?",
                (last_stock_price, close_stock_price, position_id),
            )
        return self.get_position(position_id)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _stamp(trade: TradeEvent) -> TradeEvent:
        return replace(
            trade,
            id=trade.id or _new_id(),
            created_at=trade.created_at or datetime.now(timezone.utc).replace(tzinfo=None),
        )

    @staticmethod
    def _insert_trade(c: sqlite3.Connection, position_id: str, t: TradeEvent) -> None:
        c.execute(
            """
            INSERT INTO trades (id, position_id, trade_type, contracts, premium, trade_date,
                                shares_per_contract, fee, margin_percent, stock_price, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                t.id, position_id, t.trade_type.strip().upper(), t.contracts, t.premium,
                _iso(t.trade_date), t.shares_per_contract, t.fee, t.margin_percent,
                t.stock_price, _iso(t.created_at),
            ),
        )

    @staticmethod
    def _row_to_position(row: tuple) -> OptionPosition:
        pid, symbol, direction, option_type, strike, expiry, status, quote_code, last_px, close_px = row
        return OptionPosition(
            id=pid,
            symbol=symbol,
            direction=Direction(direction),
            option_type=OptionType(option_type),
            strike=strike,
            expiry=date.fromisoformat(expiry),
            status=PositionStatus(status),
            quote_code=quote_code,
            last_stock_price=last_px,
            close_stock_price=close_px,
        )

    @staticmethod
    def _row_to_trade(row: tuple) -> TradeEvent:
        tid, trade_type, contracts, premium, trade_date, shares, fee, margin, stock_px, created = row
        return TradeEvent(
            id=tid,
            trade_type=trade_type,
            contracts=contracts,
            premium=premium,
            trade_date=_parse_when(trade_date),
            shares_per_contract=shares,
            fee=fee,
            margin_percent=margin,
            stock_price=stock_px,
            created_at=datetime.fromisoformat(created),
        )
