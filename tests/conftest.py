"""Pytest configuration for the Momentum volume bot.

Tests import modules as ``from strategies...`` / ``from exchanges...``, which
needs the repository root on ``sys.path`` when pytest runs from elsewhere.
"""

from __future__ import annotations

import sys
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))
