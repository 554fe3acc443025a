"""Convenience entrypoint for relarr.

This allows running the pipeline via:

  python -m relarr --config relarr.yaml

It delegates to `relarr_driver.main`.
"""
import sys

from relarr_driver import main


if __name__ == '__main__':
    sys.exit(main())
