from __future__ import annotations

import sys
from pathlib import Path

# Make `import app`, `from parsers...` and `from fatura_import...` work without an install,
# whatever the working directory pytest was started from.
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))
