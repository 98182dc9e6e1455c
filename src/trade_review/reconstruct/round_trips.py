from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from trade_review.models import (
    DIRECTION_LONG,
    DIRECTION_SHORT,
    Execution,
    OpenPosition,
    PositionGroup,
)

POSITION_EPSILON = 0.001
CLOSED_PNL_FLOOR = 0.01


@dataclass
class PositionState:
    symbol: str
    size: float = 0.0
    direction: str = ""
    entries: list[Execution] = field(default_factory=list)
    exits: list[Execution] = field(default_factory=list)


@dataclass(frozen=True)
class GroupingResult:
    groups: list[PositionGroup]
    open_positions: list[OpenPosition]


def group_round_trips(executions: Iterable[Execution]) -> GroupingResult:
    """Fold a time-ordered execution stream into closed round trips per symbol.

    Input order is kept as given (``build_executions`` already sorts it).
    Positions still open at the end of the stream are returned separately
    and never become groups.
    """
    states: dict[str, PositionState] = {}
    groups: list[PositionGroup] = []

    for execution in executions:
        state = states.get(execution.symbol)
        if state is None:
            state = PositionState(symbol=execution.symbol)
            states[execution.symbol] = state
        _apply_execution(state, execution, groups)

    open_positions: list[OpenPosition] = []
    for state in states.values():
        if state.entries and state.exits:
            groups.append(build_group(state.symbol, state.entries, state.exits, state.direction))
        elif state.entries:
            open_positions.append(
                OpenPosition(
                    symbol=state.symbol,
                    direction=state.direction,
                    quantity=abs(state.size),
                    entries=list(state.entries),
                )
            )

    groups.sort(key=lambda group: group.opened_at)
    open_positions.sort(key=lambda position: position.opened_at)
    return GroupingResult(groups=groups, open_positions=open_positions)


def _apply_execution(state: PositionState, execution: Execution, groups: list[PositionGroup]) -> None:
    delta = execution.signed_quantity

    if abs(state.size) < POSITION_EPSILON:
        if state.entries and state.exits:
            groups.append(build_group(state.symbol, state.entries, state.exits, state.direction))
        _start_position(state, execution, delta)
        return

    if (state.direction == DIRECTION_LONG) == execution.is_buy:
        state.entries.append(execution)
        state.size += delta
        return

    state.exits.append(execution)
    state.size += delta
    if abs(state.size) < POSITION_EPSILON:
        groups.append(build_group(state.symbol, state.entries, state.exits, state.direction))
        _reset_state(state)


def _start_position(state: PositionState, execution: Execution, delta: float) -> None:
    state.size = delta
    state.direction = DIRECTION_LONG if execution.is_buy else DIRECTION_SHORT
    state.entries = [execution]
    state.exits = []


def _reset_state(state: PositionState) -> None:
    state.size = 0.0
    state.direction = ""
    state.entries = []
    state.exits = []


def build_group(
    symbol: str,
    entries: list[Execution],
    exits: list[Execution],
    direction: str,
) -> PositionGroup:
    entry_qty = sum(item.quantity for item in entries)
    exit_qty = sum(item.quantity for item in exits)
    entry_avg = sum(item.price * item.quantity for item in entries) / entry_qty
    exit_avg = sum(item.price * item.quantity for item in exits) / exit_qty
    used_qty = min(entry_qty, exit_qty)

    # Exchange-reported P&L takes precedence over the price-derived figure.
    reported = sum(item.closed_pnl for item in exits)
    if abs(reported) > CLOSED_PNL_FLOOR:
        pnl = reported
    elif direction == DIRECTION_LONG:
        pnl = (exit_avg - entry_avg) * used_qty
    else:
        pnl = (entry_avg - exit_avg) * used_qty

    if direction == DIRECTION_LONG:
        pnl_percent = (exit_avg - entry_avg) / entry_avg * 100
    else:
        pnl_percent = (entry_avg - exit_avg) / entry_avg * 100

    return PositionGroup(
        symbol=symbol,
        direction=direction,
        entries=list(entries),
        exits=list(exits),
        entry_avg=entry_avg,
        exit_avg=exit_avg,
        entry_qty=used_qty,
        pnl=pnl,
        pnl_percent=pnl_percent,
        holding_time=exits[-1].timestamp - entries[0].timestamp,
    )
