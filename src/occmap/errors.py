#!/usr/bin/env python3
"""occmap.errors

Exceptions raised by the density core.

Every error derives from OccmapError, which is a ValueError: these are all
"bad input" conditions detected synchronously, never transient failures.

Undefined values (zero-area densities, no-data colours) are NOT errors.
They travel as NaN / None and callers check them with
occmap.density.normalize.is_undefined().
"""

from __future__ import annotations

from typing import Iterable, List


class OccmapError(ValueError):
    """Base class for occmap input errors."""


class InvalidGeometry(OccmapError):
    """A region geometry is null, empty, non-polygonal, invalid or has zero area."""

    def __init__(self, region_ids: Iterable, reason: str = "degenerate geometry"):
        self.region_ids: List = list(region_ids)
        self.reason = reason
        shown = ", ".join(repr(r) for r in self.region_ids[:10])
        more = f" (+{len(self.region_ids) - 10} more)" if len(self.region_ids) > 10 else ""
        super().__init__(f"{reason}: {shown}{more}")


class MismatchedLength(OccmapError):
    """Two collections that must align element-wise have different lengths."""

    def __init__(self, expected: int, got: int, what: str = "attribute"):
        self.expected = expected
        self.got = got
        super().__init__(f"{what} has {got} entries, expected {expected} (one per point)")


class DegenerateScale(OccmapError):
    """No strictly-positive value exists, so a log scale can't be anchored."""


class DuplicateRegionId(OccmapError):
    """Region identifiers are missing or not unique."""


class CrsMismatch(OccmapError):
    """Points and regions declare different coordinate reference systems."""
