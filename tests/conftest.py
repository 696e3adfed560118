"""Pytest configuration and fixtures.

This module configures pytest to resolve imports from the lenschain package
when the project is not installed.
"""

import sys
from pathlib import Path

# Add the repository root to Python path so lenschain imports work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))
