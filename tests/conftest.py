"""Pytest configuration for path setup.

The test suite imports the ``tradedesk`` package from ``tradedesk/src``.
When the package has not been installed (``pip install -e .``), that
directory is not on ``sys.path``; this file puts both the project root
(for ``tests.helpers``) and ``tradedesk/src`` at the front.
"""

from __future__ import annotations

import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]

for path in (ROOT, ROOT / "tradedesk" / "src"):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)
