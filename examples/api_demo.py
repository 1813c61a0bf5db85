"""Programmatic API example for costpath.

Edit the input/output paths below before running:
    python examples/api_demo.py
"""

from costpath import PathTracer
from costpath.base import format_elapsed


def main():
    input_destination = r"C:\path\to\destination.tif"
    input_backlink = r"C:\path\to\backlink.tif"

    tracer = PathTracer()
    tracer.load_destination(input_destination)
    tracer.load_backlink(input_backlink)
    tracer.run(zero_background=False, workers=4, verbose=True)
    print(f"Processed in {format_elapsed(tracer.result_.elapsed)}")
    for failure in tracer.result_.failures:
        print(f"Destination ({failure.row}, {failure.col}): {failure.reason}")
    tracer.save(r"C:\path\to\cost_path.tif")


if __name__ == "__main__":
    main()
