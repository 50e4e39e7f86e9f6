"""Bundled sample exercise catalog."""

import os

CATALOG_DIR = os.path.dirname(os.path.abspath(__file__))
