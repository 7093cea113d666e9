import sys
import unittest

if __name__ == '__main__':
    # Collect every tests/test_*.py module
    suite = unittest.defaultTestLoader.discover("tests", top_level_dir=".")

    # Run the tests
    runner = unittest.TextTestRunner()
    result = runner.run(suite)
    sys.exit(0 if result.wasSuccessful() else 1)
