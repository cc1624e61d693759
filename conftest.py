"""
Pytest configuration file.

Adds the project root to Python path so tests import modules as src.*.
"""

import sys
import os

# Add project root to Python path
_project_root = os.path.dirname(os.path.abspath(__file__))

if _project_root not in sys.path:
    sys.path.insert(0, _project_root)
