import os
import sys

_ROOT = os.path.join(os.path.dirname(__file__), "..")

# backend/ modules and scripts/ CLIs are imported top-level in tests
for _sub in ("backend", "scripts"):
    sys.path.insert(0, os.path.join(_ROOT, _sub))
