"""
Historical price data for a contract.

The server caps one ``ticks_history`` request at 4999 points and produces
roughly one tick every two seconds. Windows small enough to fit are fetched
as raw ticks; longer ones are fetched as candles at the finest granularity
that keeps the result under the cap.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

GRANULARITIES = (60, 120, 180, 300, 600, 900, 1800, 3600, 7200, 14400, 28800, 86400)
MAX_POINTS = 4999
CANDLES_THRESHOLD = 5000
SECONDS_PER_TICK = 2

UNIT_SECONDS = {'s': 1, 'm': 60, 'h': 3600, 'd': 86400}
UNIT_ALIASES = {'second': 's', 'minute': 'm', 'hour': 'h', 'day': 'd'}

Point = Dict[str, float]


def duration_to_seconds(count: int, unit: str) -> int:
    """Length of ``count`` units; unknown units count as days."""
    unit = UNIT_ALIASES.get(unit, unit)
    return int(count) * UNIT_SECONDS.get(unit, UNIT_SECONDS['d'])


def select_granularity(span: float) -> int:
    """Smallest candle width that covers ``span`` seconds in MAX_POINTS buckets."""
    ideal = span / MAX_POINTS
    for granularity in GRANULARITIES:
        if ideal <= granularity:
            return granularity
    return GRANULARITIES[-1]


def candles_to_points(candles: Iterable[Dict[str, Any]]) -> List[Point]:
    return [
        {'epoch': int(float(candle['epoch'])), 'quote': float(candle['open'])}
        for candle in candles
    ]


def history_to_points(history: Dict[str, Any]) -> List[Point]:
    return [
        {'epoch': int(float(epoch)), 'quote': float(price)}
        for epoch, price in zip(history['times'], history['prices'])
    ]


def contract_window(
    contract: Dict[str, Any],
    duration_type: str = 'all',
    duration_count: Optional[int] = None,
    now: Optional[float] = None,
):
    """(start, end) epochs of the window to fetch for a contract snapshot."""
    purchase_time = int(contract['purchase_time'])

    sell_time = contract.get('sell_time')
    if sell_time:
        end = int(sell_time)
    else:
        end = int(now if now is not None else time.time())

    if duration_type == 'all':
        return purchase_time, end

    if duration_count is None:
        raise ValueError(f"duration_count is required for duration_type={duration_type!r}")

    start = min(purchase_time, end - duration_to_seconds(duration_count, duration_type))
    return start, end


async def fetch_points(api, symbol: str, start: int, end: int, style: str = 'ticks') -> List[Point]:
    """Fetch ``symbol`` quotes between ``start`` and ``end`` within the point cap."""
    span = end - start
    options = {
        'start': start,
        'end': end,
        'adjust_start_time': 1,
        'count': MAX_POINTS,
    }

    if style == 'candles' or span / SECONDS_PER_TICK >= CANDLES_THRESHOLD:
        granularity = select_granularity(span)
        logger.debug(f"Fetching {symbol} candles for {span}s at {granularity}s granularity")
        response = await api.invoke(
            'get_tick_history', symbol, {**options, 'style': 'candles', 'granularity': granularity}
        )
        return candles_to_points(response['candles'])

    logger.debug(f"Fetching {symbol} ticks for {span}s")
    response = await api.invoke('get_tick_history', symbol, {**options, 'style': 'ticks'})
    return history_to_points(response['history'])


async def get_data_for_contract(
    api,
    contract_id: int,
    duration_type: str = 'all',
    duration_count: Optional[int] = None,
    style: str = 'ticks',
    clock: Callable[[], float] = time.time,
) -> List[Point]:
    """
    Ordered ``{epoch, quote}`` points for a contract.

    Args:
        api: Session used to issue the calls
        contract_id: Contract to look up
        duration_type: ``all`` for the whole lifetime, or a unit
            (``s``/``m``/``h``/``d`` or ``second``/``minute``/``hour``/``day``)
        duration_count: Number of units, required unless ``duration_type`` is ``all``
        style: ``ticks`` switches to candles when the window is too long;
            ``candles`` always fetches candles
        clock: Wall clock used for contracts that are still open
    """
    response = await api.invoke('subscribe_to_open_contract', contract_id)
    contract = response['proposal_open_contract']

    start, end = contract_window(contract, duration_type, duration_count, now=clock())
    return await fetch_points(api, contract['underlying'], start, end, style)
