"""Application state context and its persistence lanes."""

from household_finance.state.debounce import Debouncer
from household_finance.state.store import DEFAULT_DEBOUNCE_SECONDS, StateStore

__all__ = ["DEFAULT_DEBOUNCE_SECONDS", "Debouncer", "StateStore"]
