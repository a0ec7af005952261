from __future__ import annotations

import pytest

from spiralvec import available_backends, use_backend


@pytest.fixture(params=["portable", "accelerated"])
def backend(request):
    """Run the test once per execution strategy that is usable on this machine."""

    if request.param not in available_backends():
        pytest.skip("no CBLAS library could be loaded")
    with use_backend(request.param) as resolved:
        yield resolved
