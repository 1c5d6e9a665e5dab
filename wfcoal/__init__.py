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
wfcoal simulates the genealogy of genomes sampled from a haploid
Wright-Fisher population with point mutation and homologous gene transfer,
and the sequences evolving along it.
"""

from wfcoal.ancestry import (
    Event,
    EventType,
    EvolutionHistory,
    Node,
    NodeType,
    PopulationParameters,
    sim_ancestry,
    Simulator,
)

from wfcoal.core import __version__

from wfcoal.exceptions import (
    FileFormatError,
    InvariantError,
    SimulationError,
    VersionTooNewError,
    VersionTooOldError,
    WfcoalException,
)

from wfcoal.formats import dump_history, load_history, read_fasta, write_fasta
from wfcoal.forward import SequencePopulation
from wfcoal.intervals import Assembly, Fragment, merge, split

from wfcoal.mutations import (
    as_strings,
    NUCLEOTIDES,
    SequenceOverlay,
    sim_mutations,
)

from wfcoal.simulations import run_replicates, simulate, SimulationResult

from wfcoal.stats import (
    CovarianceMatrix,
    Covariances,
    distance_matrix,
    expected_divergence,
    pairwise_distances,
)
