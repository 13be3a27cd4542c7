"""
Package level exception base and small string/bytes helpers.
"""

__classification__ = "UNCLASSIFIED"


class NitfVizError(Exception):
    """A custom exception class for nitfviz, from which every package error derives."""


def bytes_to_string(bytes_in, encoding='utf-8'):
    """
    Ensure that the input bytes is mapped to a string.

    Parameters
    ----------
    bytes_in : bytes|bytearray|memoryview|str
    encoding : str
        The encoding to apply, if necessary.

    Returns
    -------
    str
    """

    if isinstance(bytes_in, str):
        return bytes_in
    if isinstance(bytes_in, (bytearray, memoryview)):
        bytes_in = bytes(bytes_in)

    if not isinstance(bytes_in, bytes):
        raise TypeError('Input is required to be bytes. Got type {}'.format(type(bytes_in)))

    return bytes_in.decode(encoding)
