"""Epoch settlement relay.

Public API:
    EpochClock          - Wall-clock epoch arithmetic
    PricePoint          - Immutable accepted tick
    EpochResult         - Immutable settlement record
    EpochState          - Engine state snapshot
    SettlementEngine    - Single-writer settlement state machine
    BroadcastHub        - Non-blocking fan-out to subscribers
    SessionManager      - WebSocket subscriber lifecycle
    EpochScheduler      - Background rollover checks and countdown
    TickSource          - Abstract interface for upstream feeds
    create_tick_source  - Factory that selects Pyth or the simulator
    create_stream_router - FastAPI router factory for WebSocket + health
"""

from .clock import EpochClock
from .engine import SettlementEngine
from .factory import create_tick_source
from .hub import BroadcastHub
from .interface import TickSource
from .models import EpochResult, EpochState, PricePoint
from .scheduler import EpochScheduler
from .sessions import SessionManager
from .stream import create_stream_router

__all__ = [
    "EpochClock",
    "PricePoint",
    "EpochResult",
    "EpochState",
    "SettlementEngine",
    "BroadcastHub",
    "SessionManager",
    "EpochScheduler",
    "TickSource",
    "create_tick_source",
    "create_stream_router",
]
