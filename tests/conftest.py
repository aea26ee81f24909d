import os
from pathlib import Path
import sys
import tempfile

# Keep the data dir (kv.db, sync.log) out of the user's profile while testing.
os.environ.setdefault("SAFETYSYNC_DATA_DIR", tempfile.mkdtemp(prefix="safetysync-tests-"))

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

TESTS = Path(__file__).resolve().parent
if str(TESTS) not in sys.path:
    sys.path.insert(0, str(TESTS))
