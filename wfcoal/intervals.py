#
# Copyright (C) 2026 wfcoal developers
#
# This file is part of wfcoal.
#
# wfcoal is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# wfcoal is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with wfcoal.  If not, see <http://www.gnu.org/licenses/>.
#
"""
Utilities for working with sets of ancestral material intervals.

Genome coordinates are integers in ``[0, genome_length)`` and every
:class:`Fragment` is a *closed* interval, so that ``Fragment(3, 5)`` covers
the three positions 3, 4 and 5. An :class:`Assembly` is a normalised set of
fragments: sorted by ``begin``, pairwise disjoint and never adjacent, which
gives every set of positions exactly one representation.
"""
from __future__ import annotations

import bisect
import collections.abc
import typing

import numpy as np

from . import exceptions


class Fragment(typing.NamedTuple):
    """
    A contiguous block of ancestral material covering the positions
    ``begin`` to ``end`` inclusive.
    """

    begin: int
    end: int

    @property
    def span(self):
        """
        The number of positions covered by this fragment.
        """
        return self.end - self.begin + 1

    def __str__(self):
        return f"[{self.begin}, {self.end}]"


def _check_normalised(fragments):
    """
    Returns None if the specified list of fragments is normalised, or
    a message describing the first problem found otherwise.
    """
    last_end = None
    for j, frag in enumerate(fragments):
        if frag.begin > frag.end:
            return f"Fragment {j} has begin > end: {frag}"
        if frag.begin < 0:
            return f"Fragment {j} has negative coordinates: {frag}"
        if last_end is not None and frag.begin <= last_end + 1:
            return (
                f"Fragment {j} {frag} overlaps or is adjacent to the previous "
                f"fragment ending at {last_end}"
            )
        last_end = frag.end
    return None


class Assembly(collections.abc.Sequence):
    """
    An immutable, normalised set of :class:`Fragment` objects describing the
    ancestral material carried by a lineage. The empty assembly denotes a
    lineage that carries no ancestral material at all.

    :param fragments: An iterable of :class:`Fragment` instances or
        ``(begin, end)`` pairs. These must already be sorted, disjoint and
        non-adjacent; use :func:`merge` to normalise arbitrary input.
    """

    __slots__ = ["_fragments"]

    def __init__(self, fragments=()):
        fragments = tuple(Fragment(int(begin), int(end)) for begin, end in fragments)
        problem = _check_normalised(fragments)
        if problem is not None:
            raise ValueError(f"Fragments are not normalised: {problem}")
        self._fragments = fragments

    @classmethod
    def _from_normalised(cls, fragments):
        # Used by the algebra, whose output is normalised by construction.
        assembly = cls.__new__(cls)
        assembly._fragments = tuple(fragments)
        return assembly

    @classmethod
    def full(cls, genome_length):
        """
        Returns the assembly covering the whole of a genome of the specified
        length.
        """
        if genome_length <= 0:
            raise ValueError("Genome length must be positive")
        return cls._from_normalised([Fragment(0, genome_length - 1)])

    def __getitem__(self, index):
        return self._fragments[index]

    def __len__(self):
        return len(self._fragments)

    def __eq__(self, other):
        if not isinstance(other, Assembly):
            return NotImplemented
        return self._fragments == other._fragments

    def __hash__(self):
        return hash(self._fragments)

    def __repr__(self):
        return "Assembly([" + ", ".join(map(str, self._fragments)) + "])"

    @property
    def num_positions(self):
        """
        The total number of genome positions covered by this assembly.
        """
        return sum(frag.span for frag in self._fragments)

    @property
    def left(self):
        """
        The leftmost covered position, or None if the assembly is empty.
        """
        return self._fragments[0].begin if len(self._fragments) > 0 else None

    @property
    def right(self):
        """
        The rightmost covered position, or None if the assembly is empty.
        """
        return self._fragments[-1].end if len(self._fragments) > 0 else None

    def positions(self):
        """
        Returns a numpy array of all the positions covered by this assembly
        in increasing order.
        """
        if len(self._fragments) == 0:
            return np.zeros(0, dtype=np.int64)
        return np.concatenate(
            [np.arange(frag.begin, frag.end + 1) for frag in self._fragments]
        )

    def covers(self, position):
        """
        Returns True if the specified position lies within this assembly.
        """
        j = bisect.bisect_right([frag.begin for frag in self._fragments], position)
        return j > 0 and self._fragments[j - 1].end >= position

    def aslist(self):
        return [[frag.begin, frag.end] for frag in self._fragments]

    def verify(self):
        """
        Checks the normalisation invariant, raising an
        :class:`.InvariantError` if it does not hold.
        """
        problem = _check_normalised(self._fragments)
        if problem is not None:
            raise exceptions.InvariantError(f"Assembly not normalised: {problem}")


def merge(a, b):
    """
    Returns the union of the two specified assemblies as a new
    :class:`Assembly`. Overlapping and adjacent fragments are joined, so the
    result is the minimal representation of the union. The empty assembly
    is the identity.
    """
    fragments = sorted(list(a) + list(b), key=lambda frag: frag.begin)
    if len(fragments) == 0:
        return Assembly._from_normalised([])
    merged = []
    begin, end = fragments[0]
    for frag in fragments[1:]:
        if frag.begin <= end + 1:
            end = max(end, frag.end)
        else:
            merged.append(Fragment(begin, end))
            begin, end = frag
    merged.append(Fragment(begin, end))
    return Assembly._from_normalised(merged)


def split(a, begin, end):
    """
    Partitions the assembly ``a`` into the material lying outside the closed
    interval ``[begin, end]`` and the material lying inside it, returning the
    tuple ``(outside, inside)`` of new assemblies. Either may be empty.
    """
    if begin > end:
        raise ValueError("Split interval must have begin <= end")
    fragments = list(a)
    # First fragment that may reach into [begin, end], and the first that
    # lies entirely to the right of it.
    left = bisect.bisect_left([frag.end for frag in fragments], begin)
    right = bisect.bisect_right([frag.begin for frag in fragments], end)
    outside = fragments[:left]
    inside = []
    for frag in fragments[left:right]:
        if frag.begin < begin:
            outside.append(Fragment(frag.begin, begin - 1))
        inside.append(Fragment(max(frag.begin, begin), min(frag.end, end)))
        if frag.end > end:
            outside.append(Fragment(end + 1, frag.end))
    outside.extend(fragments[right:])
    return Assembly._from_normalised(outside), Assembly._from_normalised(inside)
