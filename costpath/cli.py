"""Command-line interface for the costpath toolkit.

Usage examples::

    costpath pathway --destination dst.tif --backlink backlink.tif -o cost_path.tif
    costpath pathway --wd /path/to/data --destination dst.tif --backlink backlink.tif \\
        -o cost_path.tif --zero_background --workers 4 -v
"""

import argparse
import logging
import os

from rasterio.errors import RasterioIOError

from costpath.errors import CostPathError
from costpath.tracers import PathTracer

logger = logging.getLogger("costpath")


def _resolve(path, working_directory):
    """Prefix *path* with the working directory when it has no directory part."""
    if working_directory and os.path.dirname(path) == "":
        return os.path.join(working_directory, path)
    return path


def _run_pathway(args):
    destination = _resolve(args.destination, args.wd)
    backlink = _resolve(args.backlink, args.wd)
    output = _resolve(args.output, args.wd)

    tracer = PathTracer()
    tracer.load_destination(destination)
    tracer.load_backlink(backlink)
    tracer.run(zero_background=args.zero_background, workers=args.workers,
               verbose=args.verbose)
    tracer.save(output)
    logger.info("Output file written: %s", output)


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="costpath",
        description="Cost-distance pathway analysis toolkit",
    )
    subparsers = parser.add_subparsers(dest="tool", required=True)

    # Shared arguments
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true",
                        help="Report progress and timings")

    p_pathway = subparsers.add_parser(
        "pathway",
        parents=[common],
        help="Map the least-cost pathway from each destination cell to its source",
    )
    p_pathway.add_argument("--destination", required=True,
                           help="Input destination raster (positive cells are destinations)")
    p_pathway.add_argument("--backlink", required=True,
                           help="Input back-link raster generated by a cost-distance tool")
    p_pathway.add_argument("-o", "--output", required=True,
                           help="Output cost pathway raster path")
    p_pathway.add_argument("--zero_background", "--esri_style", action="store_true",
                           help="Encode background cells as 0 instead of NoData")
    p_pathway.add_argument("--wd", default=None,
                           help="Working directory for paths given without a directory")
    p_pathway.add_argument("--workers", type=int, default=1,
                           help="Number of parallel tracing workers (default: 1)")
    p_pathway.set_defaults(func=_run_pathway)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.workers < 1:
        parser.error("--workers must be a positive integer")

    try:
        args.func(args)
    except (CostPathError, RasterioIOError) as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
