from __future__ import annotations

from typing import Any, Sequence


class ZauthBenchError(Exception):
    pass


class DiscoveryError(ZauthBenchError):
    """The discovery service returned something the run cannot proceed with.

    Distinct from an ordinary query failure: one flaky endpoint is burn, a
    discovery service that answers with the wrong type means there is nothing
    to compare at all.
    """


class InsufficientSampleError(ZauthBenchError):
    """No matched trial pairs survived truncation, so no verdict exists.

    `trials` holds whatever did complete; money was spent on them and they
    still get exported.
    """

    def __init__(self, message: str, trials: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.trials = list(trials)
