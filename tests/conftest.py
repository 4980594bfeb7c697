from __future__ import annotations

import pytest

from tests.fakes import ARANET4_PAYLOAD, BASIC, DETAILED, FIRMWARE, NAME


@pytest.fixture
def aranet4_values() -> dict[str, bytes]:
    return {
        NAME: b"Aranet4 1A2B3",
        FIRMWARE: b"v1.4.19",
        DETAILED: ARANET4_PAYLOAD,
        BASIC: ARANET4_PAYLOAD,
    }
