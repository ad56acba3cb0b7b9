import types

import phenoTrend
from phenoTrend import (
    Analysis,
    EmptyDataError,
    InsufficientDataError,
    fit_linear_model,
    quality_filter,
    reduce_to_first_events,
)


def test_top_level_imports():
    """
    Test that key functions can be imported from the top-level package.
    """
    assert isinstance(reduce_to_first_events, types.FunctionType)
    assert isinstance(quality_filter, types.FunctionType)
    assert isinstance(fit_linear_model, types.FunctionType)
    assert issubclass(Analysis, object)
    assert issubclass(EmptyDataError, ValueError)
    assert issubclass(InsufficientDataError, ValueError)


def test_version_is_present():
    """
    Test that the package has a __version__ attribute.
    """
    assert hasattr(phenoTrend, "__version__")
    assert isinstance(phenoTrend.__version__, str)


def test_all_names_exist():
    for name in phenoTrend.__all__:
        assert hasattr(phenoTrend, name)
