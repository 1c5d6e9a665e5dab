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
Module responsible for computing statistics on simulated sequences.

Sequences are treated as opaque fixed-length arrays; none of the functions
here need to know anything about the ancestry that produced them.
"""
import dataclasses
import math

import numpy as np


def _as_row(seq):
    if isinstance(seq, str):
        seq = seq.encode("ascii")
    if isinstance(seq, (bytes, bytearray)):
        return np.frombuffer(seq, dtype=np.uint8)
    return np.asarray(seq)


def _as_matrix(sequences):
    """
    Returns the specified sequences as a 2D numpy array with one row per
    sequence. Dictionaries are ordered by key.
    """
    if isinstance(sequences, dict):
        sequences = [sequences[key] for key in sorted(sequences.keys())]
    rows = [_as_row(seq) for seq in sequences]
    if len(rows) == 0:
        raise ValueError("At least one sequence is required")
    lengths = {len(row) for row in rows}
    if len(lengths) != 1:
        raise ValueError("All sequences must have the same length")
    return np.vstack(rows)


def distance_matrix(sequences):
    """
    Returns, for each pair of sequences ``(i, j)`` with ``i < j`` in
    row-major order, the sorted array of positions at which the two
    sequences differ.
    """
    G = _as_matrix(sequences)
    n = G.shape[0]
    return [
        np.flatnonzero(G[i] != G[j]) for i in range(n) for j in range(i + 1, n)
    ]


def pairwise_distances(sequences):
    """
    Returns the condensed array of Hamming distances between all pairs of
    sequences, in the same order as :func:`distance_matrix`.
    """
    G = _as_matrix(sequences)
    n = G.shape[0]
    i, j = np.triu_indices(n, k=1)
    return np.sum(G[i] != G[j], axis=1)


def expected_divergence(
    population_size, mutation_rate, transfer_rate, fragment_length, num_states=4
):
    """
    Returns the analytical expected fraction of sites at which two genomes
    sampled from a haploid Wright-Fisher population differ, for a
    ``num_states`` symbol alphabet. With no transfer this is the familiar
    ``2 N u / (1 + 2 N u a / (a - 1))``.
    """
    if num_states < 2:
        raise ValueError("num_states must be >= 2")
    if mutation_rate <= 0:
        raise ValueError("mutation_rate must be > 0")
    n = population_size
    a = num_states
    u = mutation_rate
    ratio = fragment_length * transfer_rate / u
    ut = 2.0 * (u + transfer_rate * fragment_length)
    ustar = 1.0 - math.exp(-ut * (1.0 + 1.0 / ((a - 1) * (1.0 + ratio))))
    return n * ustar / (ratio + a / (a - 1) * (n * ustar + 1.0 - ustar))


@dataclasses.dataclass
class Covariances:
    """
    Covariances of substitutions as a function of the distance ``l``
    between sites, for ``l = 0, ..., max_distance - 1``.
    """

    scovs: np.ndarray
    """Covariance within pairs: ``<XY> - <X><Y>`` with per-pair co-occurrence."""
    rcovs: np.ndarray
    """Covariance of the per-site substitution frequencies."""
    xy: np.ndarray
    xsys: np.ndarray
    smxy: np.ndarray


class CovarianceMatrix:
    """
    The substitution positions of a set of sequence pairs, as returned by
    :func:`distance_matrix`, on a circular genome of the specified length.
    """

    def __init__(self, rows, length):
        if length <= 0:
            raise ValueError("length must be positive")
        self.length = int(length)
        self.rows = [np.unique(np.asarray(row, dtype=np.int64)) for row in rows]
        for row in self.rows:
            if len(row) > 0 and (row[0] < 0 or row[-1] >= self.length):
                raise ValueError("Positions must be within [0, length)")

    @property
    def size(self):
        return len(self.rows)

    def divergence(self):
        """
        Returns the (mean, variance) over rows of the fraction of
        positions that differ.
        """
        d = np.array([len(row) for row in self.rows]) / self.length
        variance = np.var(d, ddof=1) if len(d) > 1 else 0.0
        return float(np.mean(d)), float(variance)

    def _counts(self, max_distance):
        xs = np.zeros(self.length, dtype=np.int64)
        xy = np.zeros(max_distance, dtype=np.int64)
        for row in self.rows:
            if len(row) == 0:
                continue
            xs[row] += 1
            # Circular distance from each substitution forward to every other.
            lags = (row[np.newaxis, :] - row[:, np.newaxis]) % self.length
            xy += np.bincount(lags[lags < max_distance], minlength=max_distance)
        return xs, xy

    def covariance(self, max_distance):
        """
        Returns the :class:`Covariances` of substitutions for site distances
        up to (but not including) ``max_distance``.
        """
        if not 0 < max_distance <= self.length:
            raise ValueError("max_distance must be in (0, length]")
        if self.size == 0:
            raise ValueError("Cannot compute covariances of an empty matrix")
        xs, xy = self._counts(max_distance)
        xs_p = xs / self.size
        xy_p = xy / (self.size * self.length)
        xsys_p = np.zeros(max_distance)
        smx_p = np.zeros(max_distance)
        smy_p = np.zeros(max_distance)
        for lag in range(max_distance):
            shifted = np.roll(xs_p, -lag)
            xsys_p[lag] = np.mean(xs_p * shifted)
            smx_p[lag] = np.mean(xs_p)
            smy_p[lag] = np.mean(shifted)
        return Covariances(
            scovs=xy_p - xsys_p,
            rcovs=xsys_p - smx_p * smy_p,
            xy=xy_p,
            xsys=xsys_p,
            smxy=smx_p * smy_p,
        )
