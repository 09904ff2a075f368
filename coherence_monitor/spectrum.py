"""
Iterative radix-2 discrete Fourier transform.

The tachogram used for coherence scoring is always padded to a power of
two, so a plain Cooley–Tukey transform is enough.  The implementation works
in place on one preallocated complex buffer: a bit-reversal permutation
followed by ``log2(N)`` butterfly stages, each stage vectorised with numpy.
Bin ``k`` holds ``Σ x[n]·exp(−2πi·k·n/N)``, the same ordering as
:func:`numpy.fft.fft`.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

ArrayLike = Union[Sequence[float], np.ndarray]


def next_power_of_two(n: int) -> int:
    """Smallest power of two ``>= n`` (1 for ``n <= 1``)."""
    if n <= 1:
        return 1
    return 1 << (int(n) - 1).bit_length()


def _bit_reversed_indices(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    idx = np.arange(n, dtype=np.int64)
    rev = np.zeros(n, dtype=np.int64)
    for _ in range(bits):
        rev = (rev << 1) | (idx & 1)
        idx >>= 1
    return rev


def fft_radix2(values: ArrayLike) -> np.ndarray:
    """
    Return the complex spectrum of *values*.

    Raises
    ------
    ValueError
        If the length is not a power of two.
    """
    x = np.asarray(values)
    n = x.size
    if n == 0:
        return np.zeros(1, dtype=np.complex128)
    if n & (n - 1):
        raise ValueError(f"Transform length must be a power of two, got {n}")

    buf = np.empty(n, dtype=np.complex128)
    buf[:] = x[_bit_reversed_indices(n)]

    size = 2
    while size <= n:
        half = size // 2
        twiddle = np.exp(-2j * np.pi * np.arange(half) / size)
        blocks = buf.reshape(-1, size)
        even = blocks[:, :half].copy()
        odd = blocks[:, half:] * twiddle
        blocks[:, :half] = even + odd
        blocks[:, half:] = even - odd
        size *= 2
    return buf


def power_spectrum(values: ArrayLike) -> np.ndarray:
    """Squared magnitude of every bin of :func:`fft_radix2`."""
    spectrum = fft_radix2(values)
    return spectrum.real ** 2 + spectrum.imag ** 2
