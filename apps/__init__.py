from __future__ import annotations

import sys
from pathlib import Path

# Keep the in-repo shared library (`libs/ahwa_shared/python`) importable when
# services run from a checkout without `pip install -e .`.
try:
    _lib_dir = Path(__file__).resolve().parent.parent / "libs" / "ahwa_shared" / "python"
    if _lib_dir.is_dir() and str(_lib_dir) not in sys.path:
        sys.path.append(str(_lib_dir))
except Exception:
    # Import-time path tweaks must never break the app.
    pass
