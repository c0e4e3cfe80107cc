from tests import _config
import pytest
import typing as t

import tinypoly


def pytest_configure(config:pytest.Config):
    _config.verbose = t.cast(int, config.getoption("verbose")) or 0


@pytest.fixture
def poly() -> tinypoly.Poly:
    """Every source enabled; path values come from key/value paths."""
    return tinypoly.Poly(
        form_mapper=tinypoly.DEFAULT_FORM_MAPPER,
        path_mapper=tinypoly.DEFAULT_PATH_MAPPER,
        query_mapper=tinypoly.DEFAULT_QUERY_MAPPER,
        path_params=tinypoly.KeyValueParams(),
    )
