"""
Test suite for the Print Customizer.

This package contains unit tests for each pipeline module and
integration tests for the session controller and the HTTP surface.
"""

import sys
from pathlib import Path

# Add the project root to the Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
