"""
Exceptions raised by the topology sampler.
"""


class SamplingError(RuntimeError):
    """
    Fatal failure of a sampling call.

    Raised when the DAG or probability tables are malformed in a way that
    only shows up during traversal: no reachable root, a vertex left with a
    single child, an empty or unusable weight pool, or a finished tree whose
    leaves do not cover the taxon universe.  No partial tree is returned.
    """

    pass
