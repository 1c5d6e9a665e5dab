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
High-level simulation of sequences: ancestry followed by mutations.
"""
import concurrent.futures
import dataclasses
import logging
from typing import Dict

import numpy as np

from . import ancestry
from . import core
from . import exceptions
from . import mutations

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class SimulationResult:
    """
    The outcome of a single simulation run.
    """

    history: ancestry.EvolutionHistory
    sequences: Dict[int, np.ndarray]
    random_seed: int

    @property
    def num_samples(self):
        return len(self.sequences)


def _run_single(parameters, seed, alphabet=mutations.NUCLEOTIDES):
    """
    Runs the ancestry simulation and the mutation overlay for one replicate,
    using a single generator for both phases.
    """
    rng = core.make_random_generator(seed)
    try:
        sim = ancestry.Simulator(parameters, rng, random_seed=seed)
        history = sim.run()
        overlay = mutations.SequenceOverlay(history, rng, alphabet=alphabet)
        sequences = overlay.run()
    except exceptions.SimulationError:
        raise
    except exceptions.WfcoalException as e:
        raise exceptions.SimulationError(
            f"Simulation failed: {e}",
            parameters=parameters.asdict(),
            random_seed=seed,
        ) from e
    return SimulationResult(history=history, sequences=sequences, random_seed=seed)


def _parse_simulate(
    sample_size,
    population_size,
    genome_length,
    mutation_rate,
    transfer_rate,
    fragment_length,
    random_seed,
):
    parameters = ancestry._parse_population_parameters(
        sample_size=sample_size,
        population_size=population_size,
        genome_length=genome_length,
        mutation_rate=mutation_rate,
        transfer_rate=transfer_rate,
        fragment_length=fragment_length,
    )
    return parameters, core.parse_random_seed(random_seed)


def simulate(
    sample_size,
    *,
    population_size,
    genome_length,
    mutation_rate=None,
    transfer_rate=None,
    fragment_length=None,
    random_seed=None,
    num_replicates=None,
    alphabet=mutations.NUCLEOTIDES,
):
    """
    Simulates the sequences of ``sample_size`` genomes sampled from a
    haploid Wright-Fisher population with mutation and gene transfer.
    The ancestry is simulated backwards in time (see
    :func:`.sim_ancestry`) and the sequences are then generated forwards
    along it (see :func:`.sim_mutations`).

    If ``num_replicates`` is None a single :class:`SimulationResult` is
    returned, otherwise an iterator over ``num_replicates`` results.

    :param int sample_size: The number of sampled genomes.
    :param int population_size: The number of genomes in the population.
    :param int genome_length: The number of sites in each genome.
    :param float mutation_rate: Mutation rate per site per generation.
    :param float transfer_rate: Transfer initiation rate per site per
        generation.
    :param int fragment_length: The number of sites in a transferred block.
    :param int random_seed: The random seed. If None, one is generated.
    :param int num_replicates: The number of independent replicates.
    :param bytes alphabet: The symbols sequences are made of.
    """
    parameters, seed = _parse_simulate(
        sample_size,
        population_size,
        genome_length,
        mutation_rate,
        transfer_rate,
        fragment_length,
        random_seed,
    )
    alphabet = mutations._parse_alphabet(alphabet)
    if num_replicates is None:
        return _run_single(parameters, seed, alphabet)
    num_replicates = ancestry._parse_positive_int(num_replicates, "num_replicates")
    return _replicate_generator(parameters, seed, num_replicates, alphabet)


def _replicate_generator(parameters, seed, num_replicates, alphabet):
    for replicate_index, replicate_seed in enumerate(
        core.spawn_seeds(seed, num_replicates)
    ):
        logger.info("Starting replicate %d", replicate_index)
        yield _run_single(parameters, replicate_seed, alphabet)


def run_replicates(
    num_replicates,
    *,
    num_workers=1,
    sample_size,
    population_size,
    genome_length,
    mutation_rate=None,
    transfer_rate=None,
    fragment_length=None,
    random_seed=None,
    alphabet=mutations.NUCLEOTIDES,
):
    """
    Runs ``num_replicates`` independent simulations using a pool of
    ``num_workers`` threads and returns the list of
    :class:`SimulationResult` objects in replicate order. Each replicate owns
    a generator derived from ``random_seed``, so the results do not depend
    on the number of workers. The remaining arguments are as for
    :func:`.simulate`.
    """
    parameters, seed = _parse_simulate(
        sample_size,
        population_size,
        genome_length,
        mutation_rate,
        transfer_rate,
        fragment_length,
        random_seed,
    )
    alphabet = mutations._parse_alphabet(alphabet)
    num_replicates = ancestry._parse_positive_int(num_replicates, "num_replicates")
    num_workers = ancestry._parse_positive_int(num_workers, "num_workers")
    seeds = core.spawn_seeds(seed, num_replicates)
    logger.info(
        "Running %d replicates using %d threads", num_replicates, num_workers
    )
    with concurrent.futures.ThreadPoolExecutor(max_workers=num_workers) as executor:
        futures = [
            executor.submit(_run_single, parameters, replicate_seed, alphabet)
            for replicate_seed in seeds
        ]
        return [future.result() for future in futures]
