from __future__ import annotations

import pytest

from nvidia_installer.constants import DEFAULT_CATALOG, IMMUTABLE_CONFIG, DriverCatalog, LogicalDriver
from nvidia_installer.errors import UnknownDriverId


def test_default_catalog_ids() -> None:
    assert DEFAULT_CATALOG.ids() == ("nvidia-open-dkms", "nvidia-dkms", "nvidia-550xx-dkms")
    assert IMMUTABLE_CONFIG.catalog is DEFAULT_CATALOG


@pytest.mark.parametrize("driver", list(DEFAULT_CATALOG), ids=lambda d: d.id)
def test_every_driver_lists_itself_as_alias(driver: LogicalDriver) -> None:
    assert driver.aliases
    assert driver.id in driver.aliases


def test_kernel_module_variants_come_before_generic_package() -> None:
    aliases = DEFAULT_CATALOG.aliases("nvidia-open-dkms")
    assert aliases[0] == "linux-cachyos-nvidia-open"


def test_unknown_id_lookup_fails() -> None:
    with pytest.raises(UnknownDriverId) as excinfo:
        DEFAULT_CATALOG.aliases("nouveau")
    assert excinfo.value.logical_id == "nouveau"


def test_driver_must_include_its_own_id() -> None:
    with pytest.raises(ValueError):
        LogicalDriver("nvidia-dkms", ("linux-cachyos-nvidia",))
    with pytest.raises(ValueError):
        LogicalDriver("nvidia-dkms", ())


def test_catalog_rejects_duplicate_ids() -> None:
    driver = LogicalDriver("nvidia-dkms", ("nvidia-dkms",))
    with pytest.raises(ValueError):
        DriverCatalog((driver, driver))
