"""
Render a NITF file to a PNG or (for multiple image segments) an animated GIF.

A SICD is assembled, remapped and projected to the ground plane. Any other
NITF file has each image segment rendered directly.

For a basic help on the command-line, check

>>> python -m nitfviz.utils.nitf_to_image --help

"""

__classification__ = "UNCLASSIFIED"


import argparse
import logging
import math
import sys

from nitfviz.compliance import NitfVizError
from nitfviz.visualization.remap import DEFAULT_SIZE
from nitfviz.visualization.render import RenderOptions, SicdPolicy, render_file


TRACE = 5
logging.addLevelName(TRACE, 'TRACE')

_LEVELS = {
    'off': logging.CRITICAL + 1,
    'error': logging.ERROR,
    'warn': logging.WARNING,
    'info': logging.INFO,
    'debug': logging.DEBUG,
    'trace': TRACE}


def _positive_int(value):
    out = int(value)
    if out < 1:
        raise argparse.ArgumentTypeError('must be a positive integer, got {}'.format(value))
    return out


def _int32(value):
    out = int(value)
    if not (-2**31 <= out <= 2**31 - 1):
        raise argparse.ArgumentTypeError('must be a signed 32-bit integer, got {}'.format(value))
    return out


def _finite_float(value):
    out = float(value)
    if not math.isfinite(out):
        raise argparse.ArgumentTypeError('must be finite, got {}'.format(value))
    return out


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render a NITF file to a PNG or animated GIF image.",
        formatter_class=argparse.RawTextHelpFormatter)
    parser.add_argument('input', metavar='input_file', help='Path to the input NITF file.')
    parser.add_argument(
        '--output', default='.',
        help='Output directory, which is created if it does not exist.')
    parser.add_argument(
        '-p', '--prefix', default=None,
        help='Output file name prefix, the input file name stem by default.\n'
             'The output file is <prefix>_<size>.png or <prefix>_<size>.gif')
    parser.add_argument(
        '-s', '--size', default=DEFAULT_SIZE, type=_positive_int,
        help='The output image is size x size.')
    parser.add_argument('-b', '--brightness', default=0, type=_int32, help='Additive brightness adjustment.')
    parser.add_argument('-c', '--contrast', default=0.0, type=_finite_float, help='Contrast adjustment, 0 is unchanged.')
    parser.add_argument(
        '--level', default='info', choices=list(_LEVELS.keys()), help='The logging level.')
    parser.add_argument(
        '--nitf-log', action='store_true', help='Include the NITF container parser log messages?')
    parser.add_argument(
        '--strict-sicd', action='store_true',
        help='Fail on invalid SICD metadata, rather than rendering the image segments directly?')
    parser.add_argument(
        '-w', '--workers', default=1, type=_positive_int, help='The number of worker threads.')
    return parser


def _configure_logging(level_name: str, nitf_log: bool) -> None:
    level = _LEVELS[level_name]
    logging.basicConfig(level=max(level, TRACE))
    logging.getLogger('nitfviz').setLevel(level)
    logging.getLogger('nitfviz.io.general').setLevel(logging.NOTSET if nitf_log else logging.CRITICAL + 1)


def main(args=None) -> int:
    """
    Run the command-line tool.

    Parameters
    ----------
    args : None|List[str]
        The command-line arguments, `sys.argv[1:]` by default.

    Returns
    -------
    int
        The exit status.
    """

    args = get_parser().parse_args(args)
    _configure_logging(args.level, args.nitf_log)

    options = RenderOptions(
        size=args.size, brightness=args.brightness, contrast=args.contrast,
        sicd_policy=SicdPolicy.FATAL if args.strict_sicd else SicdPolicy.DEGRADE,
        max_workers=args.workers)
    try:
        output_path = render_file(args.input, output_dir=args.output, prefix=args.prefix, options=options)
    except (NitfVizError, OSError) as e:
        print('nitf_to_image: {}: {}'.format(type(e).__name__, e), file=sys.stderr)
        if e.__cause__ is not None:
            print('\t{}'.format(e.__cause__), file=sys.stderr)
        return 1
    logging.getLogger(__name__).info('Rendered {} to {}'.format(args.input, output_path))
    return 0


if __name__ == '__main__':
    sys.exit(main())
