"""
Root conftest.py: adds tunnelwait/ to sys.path so tests can import its modules
as bare names (e.g. `from forecast import ...`) matching how the sampler
itself runs.
"""

import sys
import os

# Insert the tunnelwait directory so modules like db, forecast, etc. are importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "tunnelwait"))
