"""
The basic error definitions for reading NITF containers and their sample data.
"""

__classification__ = "UNCLASSIFIED"

from nitfviz.compliance import NitfVizError


class NitfVizIOError(NitfVizError):
    """A custom exception class for filesystem and read failures."""


class FormatError(NitfVizError):
    """A custom exception class for a malformed or unsupported NITF container."""


class DecodeError(FormatError):
    """A custom exception class for malformed image sample encoding."""
