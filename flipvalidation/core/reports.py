from typing import Iterable, Sequence

from flipvalidation.settings import settings
from flipvalidation.store.models import Flip, RelevanceType


def available_reports_number(long_flips: Sequence[Flip]) -> int:
    """
    Maximum number of long flips that may carry an IRRELEVANT mark at once.
    Monotonic in the flip count and never negative.
    """
    divisor = max(1, int(getattr(settings, "REPORT_QUOTA_DIVISOR", 3) or 3))
    return max(0, len(long_flips) // divisor)


def reported_flips_count(long_flips: Iterable[Flip]) -> int:
    return sum(1 for f in long_flips if f.relevance == RelevanceType.IRRELEVANT)


def can_report_more(long_flips: Sequence[Flip]) -> bool:
    return reported_flips_count(long_flips) < available_reports_number(long_flips)
