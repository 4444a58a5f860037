"""
conftest.py
===========
Session-level pytest configuration for the test suite.

Custom marks
------------
statistical
    Applied to tests that compare sampled frequencies against expected
    probabilities over thousands of draws.  They use fixed seeds and so are
    deterministic, but are slower than the rest of the suite; deselect with
    ``-m "not statistical"``.

    Registration here suppresses PytestUnknownMarkWarning and makes the mark
    visible in ``pytest --markers``.
"""


def pytest_configure(config):
    """Register custom marks before test collection begins."""
    config.addinivalue_line(
        "markers",
        "statistical: frequency-convergence tests over many sampled trees "
        "(deselect with -m 'not statistical')",
    )
