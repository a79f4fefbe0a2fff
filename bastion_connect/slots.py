"""
Network ACL rule number allocation.

A network ACL holds two independent numbered rule lists, one for ingress and
one for egress. Rule numbers range from 1 to 32766; 32767 is reserved for the
implicit deny-all entry.
"""

from typing import Iterable

from .errors import CapacityExhausted

MIN_RULE_NUMBER = 1
MAX_RULE_NUMBER = 32766


def allocate(existing: Iterable[int], count: int) -> list[int]:
    """Return the `count` lowest rule numbers not present in `existing`."""
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")

    taken = sorted(set(existing))
    free: list[int] = []
    candidate = MIN_RULE_NUMBER
    idx = 0

    # Walk the sorted taken list alongside the candidate counter
    while len(free) < count and candidate <= MAX_RULE_NUMBER:
        while idx < len(taken) and taken[idx] < candidate:
            idx += 1
        if idx < len(taken) and taken[idx] == candidate:
            idx += 1
        else:
            free.append(candidate)
        candidate += 1

    if len(free) < count:
        raise CapacityExhausted(
            f"Only {len(free)} free rule numbers in [{MIN_RULE_NUMBER}, {MAX_RULE_NUMBER}], "
            f"{count} needed"
        )
    return free
