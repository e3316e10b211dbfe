#!/usr/bin/env python3
"""
Run the LiveScribe test suite.

    python run_tests.py              # unit tests (no mic, no model)
    python run_tests.py --model      # also load the real Parakeet model
    python run_tests.py -k reconcile # extra args go to pytest
"""

import os
import subprocess
import sys


def run_tests(args):
    env = dict(os.environ)
    if "--model" in args:
        args = [a for a in args if a != "--model"]
        env["LIVESCRIBE_MODEL_TESTS"] = "1"

    print("🧪 Running LiveScribe tests...")
    print("=" * 50)

    try:
        result = subprocess.run(
            [sys.executable, "-m", "pytest", "tests/", "-v", "--tb=short", *args],
            env=env,
        )
    except OSError as e:
        print(f"❌ Error running tests: {e}")
        return False

    if result.returncode == 0:
        print("\n✅ All tests passed!")
    else:
        print(f"\n❌ Some tests failed (exit code: {result.returncode})")
    return result.returncode == 0


if __name__ == "__main__":
    sys.exit(0 if run_tests(sys.argv[1:]) else 1)
