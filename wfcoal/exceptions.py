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
Exceptions defined in wfcoal.
"""


class WfcoalException(Exception):
    """
    Superclass of all exceptions thrown.
    """


class InvariantError(WfcoalException):
    """
    An internal invariant of the ancestral material algebra or the lineage
    pool was violated. This always indicates a bug.
    """


class SimulationError(WfcoalException):
    """
    A simulation run failed. The parameters and random seed needed to
    reproduce the failure are available as attributes.
    """

    def __init__(self, message, *, parameters=None, random_seed=None):
        super().__init__(message)
        self.parameters = parameters
        self.random_seed = random_seed

    def __str__(self):
        s = super().__str__()
        if self.parameters is not None:
            s += f" (parameters={self.parameters}, random_seed={self.random_seed})"
        return s


class FileFormatError(WfcoalException):
    """
    Some file format error was detected.
    """


class VersionTooNewError(FileFormatError):
    """
    The version of the file is too new and cannot be read by the library.
    """


class VersionTooOldError(FileFormatError):
    """
    The version of the file is too old and cannot be read by the library.
    """
