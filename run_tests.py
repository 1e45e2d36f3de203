import sys
from pathlib import Path

import pytest


def run_tests():
    """
    Discover and run all tests in the 'tests/' directory.
    """
    root_dir = Path(__file__).parent
    sys.path.insert(0, str(root_dir / "src"))

    exit_code = pytest.main([str(root_dir / "tests"), "-v"])

    # Exit with a non-zero status code if any tests failed
    if exit_code != 0:
        sys.exit(exit_code)


if __name__ == '__main__':
    run_tests()
