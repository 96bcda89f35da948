"""
Checks a device result against the same arithmetic done on the host.
"""

from dataclasses import dataclass
from logging import getLogger
from typing import Any, Optional

import numpy as np

from .errors import CorrectnessMismatch

logger = getLogger(__name__)


@dataclass
class VerificationResult:
    """
    Outcome of comparing a device result with the host reference.

    When the comparison fails, `index` is the first mismatching element and
    `expected` / `actual` are the reference and device values there.
    """

    passed: bool
    index: Optional[int] = None
    expected: Any = None
    actual: Any = None
    num_mismatches: int = 0

    def raise_for_mismatch(self):
        if not self.passed:
            raise CorrectnessMismatch(self.index, self.expected, self.actual)

    def __str__(self):
        if self.passed:
            return "results match"
        return (
            f"{self.num_mismatches} mismatches, first at index {self.index}: "
            f"expected {self.expected}, got {self.actual}"
        )


def verify(device_result, host_a, host_b, op=np.add):
    """
    Recompute `op(host_a[i], host_b[i])` for every index and compare it with
    `device_result[i]`.

    The reference is computed in the dtype of the device result, and the
    comparison is exact: both sides perform identical floating point
    arithmetic, so no tolerance is allowed.
    """
    device_result = np.asarray(device_result)
    host_a = np.asarray(host_a)
    host_b = np.asarray(host_b)

    if not (device_result.shape == host_a.shape == host_b.shape):
        raise ValueError(
            f"shape mismatch: result {device_result.shape}, "
            f"inputs {host_a.shape} and {host_b.shape}"
        )

    reference = op(host_a, host_b).astype(device_result.dtype, copy=False)
    mismatches = np.flatnonzero(reference != device_result)

    if len(mismatches) == 0:
        logger.info(f"verified {device_result.size} elements")
        return VerificationResult(passed=True)

    index = int(mismatches[0])
    result = VerificationResult(
        passed=False,
        index=index,
        expected=reference[index].item(),
        actual=device_result[index].item(),
        num_mismatches=len(mismatches),
    )
    logger.error(f"verification failed: {result}")
    return result
