"""
pytest configuration for oauth-callback unit tests.

With --import-mode=importlib (set in pyproject.toml), pytest does not add the
function directory to sys.path automatically, so `import handler` needs it here.
"""

import os
import sys

_this_dir = os.path.dirname(os.path.abspath(__file__))
if _this_dir not in sys.path:
    sys.path.append(_this_dir)
