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
Module responsible for reading and writing simulation output: FASTA
sequence files and JSON encoded evolution histories.
"""
import json
import logging
import pathlib

import numpy as np

from . import ancestry
from . import exceptions
from . import provenance

logger = logging.getLogger(__name__)


def _open(path_or_file, mode):
    # Returns (file, should_close).
    if hasattr(path_or_file, "read") or hasattr(path_or_file, "write"):
        return path_or_file, False
    return open(pathlib.Path(path_or_file), mode), True


def write_fasta(sequences, output, *, prefix="sample_", line_width=60):
    """
    Writes the specified dictionary of sequences to the specified file or
    path in FASTA format, ordered by key. Each record is named by
    ``prefix`` followed by its key.
    """
    if line_width <= 0:
        raise ValueError("line_width must be positive")
    f, close = _open(output, "w")
    try:
        for key in sorted(sequences.keys()):
            seq = sequences[key]
            if isinstance(seq, np.ndarray):
                seq = seq.tobytes()
            if isinstance(seq, (bytes, bytearray)):
                seq = seq.decode("ascii")
            print(f">{prefix}{key}", file=f)
            for j in range(0, len(seq), line_width):
                print(seq[j : j + line_width], file=f)
    finally:
        if close:
            f.close()


def read_fasta(source):
    """
    Reads a FASTA file, returning a dictionary mapping record names to
    sequences as numpy ``uint8`` arrays, in file order.
    """
    f, close = _open(source, "r")
    try:
        records = {}
        name = None
        chunks = []
        for line_num, line in enumerate(f, start=1):
            line = line.strip()
            if len(line) == 0:
                continue
            if line.startswith(">"):
                if name is not None:
                    records[name] = "".join(chunks)
                name = line[1:].strip()
                if len(name) == 0:
                    raise exceptions.FileFormatError(
                        f"Empty record name at line {line_num}"
                    )
                if name in records:
                    raise exceptions.FileFormatError(f"Duplicate record '{name}'")
                chunks = []
            elif name is None:
                raise exceptions.FileFormatError(
                    f"Sequence data before first record at line {line_num}"
                )
            else:
                chunks.append(line)
        if name is not None:
            records[name] = "".join(chunks)
    finally:
        if close:
            f.close()
    try:
        return {
            name: np.frombuffer(seq.encode("ascii"), dtype=np.uint8).copy()
            for name, seq in records.items()
        }
    except UnicodeEncodeError as e:
        raise exceptions.FileFormatError(f"Non ASCII sequence data: {e}")


def dump_history(history, path):
    """
    Writes the specified :class:`.EvolutionHistory` to the specified path
    as a JSON document including a provenance record.
    """
    document = history.asdict()
    parameters = {"command": "sim_ancestry", **history.parameters.asdict()}
    parameters["random_seed"] = history.random_seed
    document["provenance"] = provenance.get_provenance_dict(parameters)
    with open(path, "w") as f:
        f.write(provenance.ProvenanceEncoder().encode(document))


def load_history(path):
    """
    Reads an :class:`.EvolutionHistory` previously written with
    :func:`dump_history`.
    """
    with open(path) as f:
        try:
            document = json.load(f)
        except json.JSONDecodeError as e:
            raise exceptions.FileFormatError(f"Not a JSON document: {e}")
    if not isinstance(document, dict):
        raise exceptions.FileFormatError("History document must be a JSON object")
    if document.get("format_name") != ancestry.EvolutionHistory.FORMAT_NAME:
        raise exceptions.FileFormatError("File is not an evolution history")
    version = document.get("format_version")
    current = ancestry.EvolutionHistory.FORMAT_VERSION
    if not isinstance(version, int):
        raise exceptions.FileFormatError("Missing format version")
    if version > current:
        raise exceptions.VersionTooNewError(
            f"Format version {version} is newer than supported ({current})"
        )
    if version < current:
        raise exceptions.VersionTooOldError(
            f"Format version {version} is older than supported ({current})"
        )
    try:
        history = ancestry.EvolutionHistory.fromdict(document)
    except (KeyError, TypeError, ValueError) as e:
        raise exceptions.FileFormatError(f"Malformed evolution history: {e}")
    logger.debug("Loaded history with %d nodes from %s", history.num_nodes, path)
    return history
