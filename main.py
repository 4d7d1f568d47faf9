#!/usr/bin/env python3
"""
main.py: quick-start entry point.

Put vase images in ``assets/vases/`` and flower sprites in
``assets/flowers/``, then run:

    python main.py render

Or explore the full CLI:

    python -m bouquet_mosaic.cli presets --seed 20260209
    python -m bouquet_mosaic.cli render --index 3 --gif
    python -m bouquet_mosaic.cli still-life --min-coverage 0.2
"""

from bouquet_mosaic.cli import app

if __name__ == "__main__":
    app()
