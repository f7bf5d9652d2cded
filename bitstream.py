from typing import BinaryIO
from bitarray import bitarray
from bitarray.util import ba2int, int2ba

# Returned by read_bits when the stream runs out
EOF = -1


# Buffers the whole source so it can be reset for a second pass
class BitInputStream:
    def __init__(self, source: bytes | bytearray | memoryview | BinaryIO):
        self.bits = bitarray(endian="big")
        if isinstance(source, (bytes, bytearray, memoryview)):
            self.bits.frombytes(bytes(source))
        else:
            self.bits.frombytes(source.read())
        self.pos = 0
        self.bits_read = 0

    def read_bits(self, n: int) -> int:
        if n < 0:
            raise ValueError(f"cannot read {n} bits")
        if self.pos + n > len(self.bits):
            return EOF
        if n == 0:
            return 0
        value = ba2int(self.bits[self.pos:self.pos + n])
        self.pos += n
        self.bits_read += n
        return value

    def reset(self):
        self.pos = 0


class BitOutputStream:
    def __init__(self, sink: BinaryIO):
        self.sink = sink
        self.bits = bitarray(endian="big")
        self.closed = False

    @property
    def bits_written(self) -> int:
        return len(self.bits)

    def write_bits(self, n: int, value: int):
        if self.closed:
            raise ValueError("write to closed bit stream")
        if n < 0:
            raise ValueError(f"cannot write {n} bits")
        if n == 0:
            return
        self.bits += int2ba(value & ((1 << n) - 1), length=n, endian="big")

    def close(self):
        if self.closed:
            return
        # tobytes() pads the last byte with zero bits
        self.sink.write(self.bits.tobytes())
        self.sink.flush()
        self.closed = True
