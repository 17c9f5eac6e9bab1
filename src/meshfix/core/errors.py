# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Exception types raised by the repair pipeline.

Fatal input problems (unreadable files, unknown extensions, invalid
configuration) and precondition violations abort the run. Data anomalies
such as degenerate or non-manifold faces are never raised; they are
filtered out by the stage that finds them.
"""


class MeshRepairError(Exception):
    """Base class for all meshfix errors."""


class MeshLoadError(MeshRepairError, ValueError):
    """A mesh file exists but could not be read as a triangle mesh."""


class UnsupportedFormatError(MeshRepairError, ValueError):
    """A mesh path has an extension meshfix cannot read or write."""


class EmptyMeshError(MeshRepairError, ValueError):
    """A stage that needs at least one face was given none."""


class ConfigError(MeshRepairError, ValueError):
    """A repair configuration failed validation."""
