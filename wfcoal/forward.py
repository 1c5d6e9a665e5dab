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
A simple forward-time Wright-Fisher simulator acting directly on the
genome sequences of the whole population.
"""
import logging

import numpy as np

from . import ancestry
from . import core
from . import mutations

logger = logging.getLogger(__name__)


class SequencePopulation:
    """
    A haploid Wright-Fisher population of ``population_size`` genomes of
    ``genome_length`` sites, evolving by random reproduction, point mutation
    and transfer of ``fragment_length`` site blocks between genomes. The
    population starts as identical copies of one random sequence.

    Rates are per site per generation, as for :func:`.sim_ancestry`.
    """

    def __init__(
        self,
        population_size,
        genome_length,
        *,
        mutation_rate=None,
        transfer_rate=None,
        fragment_length=None,
        random_seed=None,
        alphabet=mutations.NUCLEOTIDES,
    ):
        self.parameters = ancestry._parse_population_parameters(
            sample_size=1,
            population_size=population_size,
            genome_length=genome_length,
            mutation_rate=mutation_rate,
            transfer_rate=transfer_rate,
            fragment_length=fragment_length,
        )
        if self.parameters.transfer_rate > 0 and population_size < 2:
            raise ValueError("Transfer requires a population of at least two")
        self.random_seed = core.parse_random_seed(random_seed)
        self.rng = core.make_random_generator(self.random_seed)
        self.alphabet = np.frombuffer(
            mutations._parse_alphabet(alphabet), dtype=np.uint8
        )
        self.N = self.parameters.population_size
        self.L = self.parameters.genome_length
        reference = self.alphabet[self.rng.integers(len(self.alphabet), size=self.L)]
        self.genomes = np.tile(reference, (self.N, 1))
        self.time = 0
        self.num_mutations = 0
        self.num_transfers = 0

    def evolve(self, num_generations=1):
        """
        Runs the specified number of generations, each consisting of
        Wright-Fisher reproduction followed by mutation and transfer.
        """
        for _ in range(num_generations):
            self.reproduce()
            self.manipulate()
            self.time += 1
        logger.debug(
            "Generation %d: mutations=%d transfers=%d",
            self.time,
            self.num_mutations,
            self.num_transfers,
        )

    def reproduce(self):
        # Each offspring copies a uniformly chosen parent genome.
        parents = self.rng.integers(self.N, size=self.N)
        self.genomes = self.genomes[parents]

    def manipulate(self):
        mu = self.parameters.mutation_rate
        tau = self.parameters.transfer_rate
        if mu + tau == 0:
            return
        num_events = self.rng.poisson(self.N * self.L * (mu + tau))
        mutation_fraction = mu / (mu + tau)
        for _ in range(num_events):
            if self.rng.random() <= mutation_fraction:
                self.mutate()
            else:
                self.transfer()

    def mutate(self):
        g = self.rng.integers(self.N)
        position = self.rng.integers(self.L)
        state = self.alphabet[self.rng.integers(len(self.alphabet))]
        while state == self.genomes[g, position]:
            state = self.alphabet[self.rng.integers(len(self.alphabet))]
        self.genomes[g, position] = state
        self.num_mutations += 1

    def transfer(self):
        recipient = self.rng.integers(self.N)
        donor = self.rng.integers(self.N)
        while donor == recipient:
            donor = self.rng.integers(self.N)
        begin = self.rng.integers(self.L)
        block = (begin + np.arange(self.parameters.fragment_length)) % self.L
        self.genomes[recipient, block] = self.genomes[donor, block]
        self.num_transfers += 1

    def sample(self, sample_size):
        """
        Returns a dictionary mapping ``0, ..., sample_size - 1`` to copies of
        distinct, uniformly chosen genomes from the population.
        """
        sample_size = ancestry._parse_positive_int(sample_size, "sample_size")
        if sample_size > self.N:
            raise ValueError("sample_size cannot be greater than population_size")
        chosen = self.rng.choice(self.N, size=sample_size, replace=False)
        return {j: self.genomes[g].copy() for j, g in enumerate(chosen)}
