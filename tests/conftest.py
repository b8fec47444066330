import sys
from pathlib import Path

PACKAGE_SRC = Path(__file__).resolve().parents[1] / "src"
TESTS_SRC = Path(__file__).resolve().parent

sys.path.insert(0, str(PACKAGE_SRC))
sys.path.insert(0, str(TESTS_SRC))
