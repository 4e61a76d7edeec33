"""Monthly normalization of periodic amounts."""

import math
from typing import Optional, Union

import structlog

from household_finance.models.finance import Cadence


logger = structlog.get_logger(__name__)


def monthly_equivalent(amount: Optional[float], cadence: Union[Cadence, str]) -> float:
    """
    Convert a periodic amount into its monthly equivalent.

    Non-finite or missing amounts normalize to 0. An unknown cadence tag is
    treated as monthly (and logged) rather than raising.
    """
    if amount is None or not math.isfinite(amount):
        return 0.0

    if not isinstance(cadence, Cadence):
        try:
            cadence = Cadence(cadence)
        except ValueError:
            logger.warning("unknown_cadence", cadence=cadence)
            return float(amount)

    if cadence == Cadence.WEEKLY:
        return amount * 52 / 12
    if cadence == Cadence.FORTNIGHTLY:
        return amount * 26 / 12
    if cadence == Cadence.YEARLY:
        return amount / 12
    return float(amount)
