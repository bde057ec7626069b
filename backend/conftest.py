from __future__ import annotations

import sys
from pathlib import Path

# Ensure `import lecture_pipeline...` works when running pytest from the repo or backend directory.
BACKEND_ROOT = Path(__file__).resolve().parent
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
