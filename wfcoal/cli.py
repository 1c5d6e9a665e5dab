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
Command line interface to the wfcoal library.
"""
import argparse
import os
import signal
import sys

import daiquiri

import wfcoal
from . import exceptions
from . import formats
from . import forward
from . import simulations
from . import stats


def set_sigpipe_handler():
    if os.name == "posix":
        # Set signal handler for SIGPIPE to quietly kill the program.
        signal.signal(signal.SIGPIPE, signal.SIG_DFL)


def setup_logging(args):
    log_level = "WARN"
    if args.verbose == 1:
        log_level = "INFO"
    elif args.verbose >= 2:
        log_level = "DEBUG"
    daiquiri.setup(level=log_level)


def positive_int(value):
    int_value = int(float(value))
    if int_value <= 0:
        msg = f"{value} in an invalid postive integer value"
        raise argparse.ArgumentTypeError(msg)
    return int_value


def add_sample_size_argument(parser):
    parser.add_argument(
        "sample_size", type=positive_int, help="The number of genomes in the sample"
    )


def add_output_fasta_argument(parser):
    parser.add_argument(
        "output_fasta", help="The FASTA file to write the sample sequences to"
    )


def add_population_arguments(parser):
    parser.add_argument(
        "--population-size",
        "-N",
        type=positive_int,
        default=1000,
        help="The number of genomes in the population",
    )
    parser.add_argument(
        "--genome-length",
        "-L",
        type=positive_int,
        default=1000,
        help="The number of sites in each genome",
    )
    parser.add_argument(
        "--mutation-rate",
        "-u",
        type=float,
        default=0,
        help="The mutation rate per site per generation",
    )
    parser.add_argument(
        "--transfer-rate",
        "-t",
        type=float,
        default=0,
        help="The rate per site per generation at which a transfer starts",
    )
    parser.add_argument(
        "--fragment-length",
        "-f",
        type=positive_int,
        default=None,
        help="The number of sites in a transferred fragment",
    )


def add_random_seed_argument(parser):
    parser.add_argument(
        "--random-seed",
        "-s",
        type=int,
        default=None,
        help="The random seed. If not specified one is chosen randomly",
    )


def run_simulate(args, parser):
    try:
        result = simulations.simulate(
            args.sample_size,
            population_size=args.population_size,
            genome_length=args.genome_length,
            mutation_rate=args.mutation_rate,
            transfer_rate=args.transfer_rate,
            fragment_length=args.fragment_length,
            random_seed=args.random_seed,
        )
    except (ValueError, TypeError) as e:
        parser.error(str(e))
    formats.write_fasta(result.sequences, args.output_fasta)
    if args.trees is not None:
        result.history.tree_sequence().dump(args.trees)
    if args.history is not None:
        formats.dump_history(result.history, args.history)


def run_forward(args, parser):
    try:
        population = forward.SequencePopulation(
            args.population_size,
            args.genome_length,
            mutation_rate=args.mutation_rate,
            transfer_rate=args.transfer_rate,
            fragment_length=args.fragment_length,
            random_seed=args.random_seed,
        )
        if args.sample_size > args.population_size:
            raise ValueError("sample_size cannot be greater than population_size")
    except (ValueError, TypeError) as e:
        parser.error(str(e))
    population.evolve(args.generations)
    formats.write_fasta(population.sample(args.sample_size), args.output_fasta)


def run_stats(args, parser):
    try:
        sequences = formats.read_fasta(args.fasta)
    except (OSError, exceptions.FileFormatError) as e:
        parser.error(f"Cannot read '{args.fasta}': {e}")
    if len(sequences) < 2:
        parser.error("At least two sequences are required")
    try:
        rows = stats.distance_matrix(sequences.values())
    except ValueError as e:
        parser.error(str(e))
    length = len(next(iter(sequences.values())))
    max_distance = min(args.max_distance, length)
    matrix = stats.CovarianceMatrix(rows, length)
    mean, variance = matrix.divergence()
    print(f"divergence_mean\t{mean:.{args.precision}g}")
    print(f"divergence_var\t{variance:.{args.precision}g}")
    covs = matrix.covariance(max_distance)
    print("l", "scov", "rcov", "xy", "xsys", "smxy", sep="\t")
    for j in range(max_distance):
        values = [covs.scovs[j], covs.rcovs[j], covs.xy[j], covs.xsys[j], covs.smxy[j]]
        print(j, *(f"{x:.{args.precision}g}" for x in values), sep="\t")


def add_simulate_subcommand(subparsers):
    parser = subparsers.add_parser(
        "simulate",
        help="Simulate sample sequences using the coalescent with transfer.",
    )
    add_sample_size_argument(parser)
    add_output_fasta_argument(parser)
    add_population_arguments(parser)
    add_random_seed_argument(parser)
    parser.add_argument(
        "--trees",
        default=None,
        help="Also write the ancestral recombination graph to this tskit file",
    )
    parser.add_argument(
        "--history",
        default=None,
        help="Also write the evolution history to this JSON file",
    )
    parser.set_defaults(runner=run_simulate)


def add_forward_subcommand(subparsers):
    parser = subparsers.add_parser(
        "forward",
        help="Simulate sample sequences by evolving the whole population forwards.",
    )
    add_sample_size_argument(parser)
    add_output_fasta_argument(parser)
    add_population_arguments(parser)
    parser.add_argument(
        "--generations",
        "-g",
        type=positive_int,
        default=1000,
        help="The number of generations to evolve the population for",
    )
    add_random_seed_argument(parser)
    parser.set_defaults(runner=run_forward)


def add_stats_subcommand(subparsers):
    parser = subparsers.add_parser(
        "stats", help="Print divergence and substitution covariance statistics."
    )
    parser.add_argument("fasta", help="The FASTA file of sequences")
    parser.add_argument(
        "--max-distance",
        "-m",
        type=positive_int,
        default=100,
        help="The number of site distances to compute covariances for",
    )
    parser.add_argument(
        "--precision",
        "-p",
        type=int,
        default=6,
        help="The number of significant digits to print",
    )
    parser.set_defaults(runner=run_stats)


def get_wfcoal_parser():
    top_parser = argparse.ArgumentParser(
        description=(
            "Command line interface for wfcoal: the Wright-Fisher coalescent "
            "with homologous gene transfer."
        )
    )
    top_parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {wfcoal.__version__}"
    )
    top_parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase the logging verbosity; may be repeated",
    )
    subparsers = top_parser.add_subparsers(dest="subcommand")
    subparsers.required = True

    add_simulate_subcommand(subparsers)
    add_forward_subcommand(subparsers)
    add_stats_subcommand(subparsers)

    return top_parser


def wfcoal_main(arg_list=None):
    set_sigpipe_handler()
    parser = get_wfcoal_parser()
    args = parser.parse_args(arg_list)
    setup_logging(args)
    try:
        args.runner(args, parser)
    except exceptions.SimulationError as e:
        sys.exit(f"wfcoal: {e}")
