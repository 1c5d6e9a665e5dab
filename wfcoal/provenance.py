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
Common provenance methods used to determine the state and versions
of various dependencies and the OS.
"""
import json
import logging

import numpy
import tskit

from . import core

logger = logging.getLogger(__name__)

SOFTWARE_NAME = "wfcoal"


def get_provenance_dict(parameters=None):
    """
    Returns a dictionary encoding an execution of wfcoal conforming to the
    tskit provenance schema.
    """
    document = {
        "schema_version": "1.0.0",
        "software": {"name": SOFTWARE_NAME, "version": core.__version__},
        "parameters": parameters,
        "environment": get_environment(),
    }
    return document


def _get_environment():
    libraries = {"numpy": {"version": numpy.__version__}}
    return tskit.provenance.get_environment(extra_libs=libraries)


_environment = None


def get_environment():
    """
    Returns a dictionary describing the environment in which wfcoal
    is currently running.
    """
    # Everything here is fixed so we cache it
    global _environment
    if _environment is None:
        _environment = _get_environment()
    return _environment


class ProvenanceEncoder(json.JSONEncoder):
    """
    Extension of the `json` encoder that serializes numpy values and
    objects providing an ``asdict`` method.
    """

    def default(self, obj):
        if isinstance(obj, numpy.ndarray):
            return obj.tolist()
        if isinstance(obj, numpy.integer):
            return int(obj)
        if isinstance(obj, numpy.floating):
            return float(obj)
        try:
            return obj.asdict()
        except AttributeError:
            raise TypeError(
                f"Object of type {obj.__class__.__name__} "
                f"is not JSON serializable. Please provide an `asdict` method "
                f"that returns the object's constructor arguments."
            )


def json_encode_provenance(provenance_dict):
    """
    Return a JSON representation of the provenance
    """
    return ProvenanceEncoder().encode(provenance_dict)


def validate_provenance(provenance_dict):
    """
    Checks the specified provenance document against the tskit provenance
    schema, raising a :class:`tskit.ProvenanceValidationError` if it does
    not conform.
    """
    tskit.validate_provenance(provenance_dict)
