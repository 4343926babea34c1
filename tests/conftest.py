# tests/conftest.py
"""
Root test configuration.

Makes the ``src`` layout importable without an editable install.
"""

import sys
from pathlib import Path

# Ensure source is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
