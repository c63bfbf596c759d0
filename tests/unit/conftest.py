import pytest

ENGINE_MODULES = ("test_mask_lift", "test_adjustment", "test_recovery", "test_metrics")


def pytest_collection_modifyitems(items):
    """Mark everything here as unit; engine rule tests are also business_logic."""
    for item in items:
        path = str(item.fspath)
        if "/unit/" not in path:
            continue
        item.add_marker(pytest.mark.unit)
        if any(name in path for name in ENGINE_MODULES):
            item.add_marker(pytest.mark.business_logic)
