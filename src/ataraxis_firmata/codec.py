"""This module provides the codecs used to make multi-byte payloads safe for transmission over the Firmata wire.

The Firmata wire format reserves the most significant bit of every byte to distinguish command bytes (MSB set) from
data bytes (MSB clear). Therefore, any 8-bit payload has to be re-encoded into 7-bit-safe groups before being placed
inside a message. This module exposes two such encodings:

    - The pair codec (encode() / decode()), which splits each byte into two 7-bit halves. This is the encoding used by
      almost all sub-protocols (strings, I2C, serial bridge, servo, ping).
    - The packed codec (pack_7bit() / unpack_7bit()), which treats the payload as a continuous bit stream and slices it
      into 7-bit groups. This is the encoding used by the 1-Wire sub-protocol and is roughly 40% denser than the pair
      codec. The packing loops are compiled with numba, as they run once per payload byte.

Additionally, the module provides the split_7bit() and join_7bit() helpers that convert integer fields (steps, speeds,
baudrates, delays) to and from little-endian groups of 7 bits.
"""

from typing import Any

from numba import njit  # type: ignore
import numpy as np
from numpy.typing import NDArray
from ataraxis_base_utilities import console

from .errors import CodecError


def _as_byte_array(data: Any, caller: str) -> NDArray[np.uint8]:
    """Converts the input bytes-like object or iterable of integers to a one-dimensional numpy uint8 array.

    Args:
        data: The data to convert. Can be a bytes / bytearray / memoryview object, a numpy array or any iterable of
            integers within the byte range.
        caller: The name of the calling function, used to format the error message.

    Raises:
        CodecError: If any of the input values does not fit into a byte.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        return np.frombuffer(bytes(data), dtype=np.uint8)

    # Routes the data through a wide integer type first to detect out-of-range values instead of silently wrapping them.
    wide = np.asarray(data, dtype=np.int64).ravel()
    if wide.size > 0 and (wide.min() < 0 or wide.max() > 255):
        message = (
            f"Unable to {caller} the input data. Expected all values to be between 0 and 255, but encountered values "
            f"between {wide.min()} and {wide.max()}."
        )
        console.error(message=message, error=CodecError)
    return wide.astype(np.uint8)


def encode(data: Any) -> NDArray[np.uint8]:
    """Splits each input byte into a (low 7 bits, high bit) pair of 7-bit-safe bytes.

    The returned array is always newly allocated and twice the size of the input.

    Args:
        data: The bytes to encode.

    Returns:
        The encoded numpy uint8 array.
    """
    source = _as_byte_array(data, caller="encode")
    output = np.empty(source.size * 2, dtype=np.uint8)
    output[0::2] = source & 0x7F
    output[1::2] = (source >> 7) & 0x7F
    return output


def decode(data: Any) -> NDArray[np.uint8]:
    """Reconstructs the original bytes from a sequence of 7-bit pairs produced by encode().

    Args:
        data: The pair sequence to decode.

    Returns:
        The decoded numpy uint8 array. The array is always newly allocated.

    Raises:
        CodecError: If the input sequence has an odd length.
    """
    source = _as_byte_array(data, caller="decode")
    if source.size % 2 != 0:
        message = (
            f"Unable to decode the input data: malformed length. Expected an even number of 7-bit values, but "
            f"encountered {source.size} values."
        )
        console.error(message=message, error=CodecError)

    low = source[0::2].astype(np.uint16)
    high = source[1::2].astype(np.uint16)
    return ((low | (high << 7)) & 0xFF).astype(np.uint8)


@njit(nogil=True, cache=True)
def _pack(data: NDArray[np.uint8]) -> NDArray[np.uint8]:  # pragma: no cover
    """Slices the input bit stream into 7-bit groups, least significant bits first."""
    output = np.zeros((data.size * 8 + 6) // 7, dtype=np.uint8)
    index = 0
    shift = 0
    previous = 0
    for i in range(data.size):
        value = int(data[i])
        if shift == 0:
            output[index] = value & 0x7F
            index += 1
            shift = 1
            previous = value >> 7
        else:
            output[index] = ((value << shift) & 0x7F) | previous
            index += 1
            # Every 7 input bytes produce 8 output groups, so the 7th byte flushes its remaining 7 bits immediately.
            if shift == 6:
                output[index] = value >> 1
                index += 1
                shift = 0
            else:
                shift += 1
                previous = value >> (8 - shift)

    if shift > 0:
        output[index] = previous
    return output


@njit(nogil=True, cache=True)
def _unpack(data: NDArray[np.uint8]) -> NDArray[np.uint8]:  # pragma: no cover
    """Reassembles the bytes sliced by _pack(). Trailing bits that do not form a whole byte are discarded."""
    size = (data.size * 7) >> 3
    output = np.zeros(size, dtype=np.uint8)
    for i in range(size):
        bit = i << 3
        position = bit // 7
        shift = bit % 7
        output[i] = ((int(data[position]) >> shift) | (int(data[position + 1]) << (7 - shift))) & 0xFF
    return output


def pack_7bit(data: Any) -> NDArray[np.uint8]:
    """Packs the input bytes into a continuous stream of 7-bit groups.

    This is the encoding used by the 1-Wire sub-protocol. N input bytes produce ceil(N * 8 / 7) output bytes.

    Args:
        data: The bytes to pack.

    Returns:
        The packed numpy uint8 array.
    """
    return _pack(_as_byte_array(data, caller="pack"))


def unpack_7bit(data: Any) -> NDArray[np.uint8]:
    """Unpacks a stream of 7-bit groups produced by pack_7bit() back into bytes.

    Args:
        data: The 7-bit groups to unpack.

    Returns:
        The unpacked numpy uint8 array. Its size is floor(N * 7 / 8), where N is the number of input groups.
    """
    return _unpack(_as_byte_array(data, caller="unpack"))


def split_7bit(value: int, groups: int) -> list[int]:
    """Splits a non-negative integer into the requested number of 7-bit groups, least significant group first."""
    return [(int(value) >> (7 * index)) & 0x7F for index in range(groups)]


def join_7bit(data: Any) -> int:
    """Combines little-endian 7-bit groups into a single integer. This is the inverse of split_7bit()."""
    result = 0
    for index, group in enumerate(data):
        result |= (int(group) & 0x7F) << (7 * index)
    return result
