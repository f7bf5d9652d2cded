import argparse
import heapq
import io
import itertools
import logging
import os
import sys
from abc import ABC
from dataclasses import dataclass
from bitarray import bitarray
from bitarray.util import ba2int

from bitstream import EOF, BitInputStream, BitOutputStream

BITS_PER_WORD = 8
BITS_PER_INT = 32
ALPH_SIZE = 1 << BITS_PER_WORD
PSEUDO_EOF = ALPH_SIZE
HUFF_NUMBER = 0xface8200
HUFF_TREE = HUFF_NUMBER | 1
# One more value than a byte holds, to fit PSEUDO_EOF
LEAF_VALUE_BITS = BITS_PER_WORD + 1
# A tree over ALPH_SIZE + 1 leaves is at most this deep
MAX_DEPTH = ALPH_SIZE

logger = logging.getLogger(__name__)


class HuffException(ValueError):
    pass

class BadMagicError(HuffException):
    pass

class TruncatedHeaderError(HuffException):
    pass

class TruncatedBodyError(HuffException):
    pass


class HuffmanTree(ABC):
    pass

@dataclass
class Fork(HuffmanTree):
    left: HuffmanTree
    right: HuffmanTree
    weight: int = 0

@dataclass
class Leaf(HuffmanTree):
    value: int
    weight: int = 0


def weight(tree: HuffmanTree) -> int:
    match tree:
        case Fork(_, _, w) | Leaf(_, w):
            return w

def calc_freq(bits_in: BitInputStream) -> list[int]:
    result = [0] * (ALPH_SIZE + 1)
    # Seeded so the sentinel always gets a code
    result[PSEUDO_EOF] = 1
    while (b := bits_in.read_bits(BITS_PER_WORD)) != EOF:
        result[b] += 1
    return result

def build_leaves(freq_stats: list[int]) -> list[Leaf]:
    return [Leaf(value, count) for value, count in enumerate(freq_stats) if count > 0]

def concat_trees(left: HuffmanTree, right: HuffmanTree) -> HuffmanTree:
    return Fork(left, right, weight(left) + weight(right))

def build_full_tree(freq_stats: list[int]) -> HuffmanTree:
    # Ties on weight go to the earlier entry: leaves in symbol order, then merges in creation order
    order = itertools.count()
    queue = [(leaf.weight, next(order), leaf) for leaf in build_leaves(freq_stats)]
    heapq.heapify(queue)
    while len(queue) > 1:
        _, _, left = heapq.heappop(queue)
        _, _, right = heapq.heappop(queue)
        merged = concat_trees(left, right)
        logger.debug("merge %d + %d -> %d", weight(left), weight(right), weight(merged))
        heapq.heappush(queue, (weight(merged), next(order), merged))
    return queue[0][2]

def make_code(tree: HuffmanTree) -> dict[int, bitarray]:
    coding = {}
    def traverse(tree: HuffmanTree, cur_code: bitarray):
        match tree:
            case Fork(l, r, _):
                traverse(l, cur_code + bitarray("0"))
                traverse(r, cur_code + bitarray("1"))
            case Leaf(v, _):
                coding[v] = cur_code
    # A lone leaf would get the empty code, so it is given "1" instead
    if isinstance(tree, Leaf):
        coding[tree.value] = bitarray("1", endian="big")
    else:
        traverse(tree, bitarray(endian="big"))
    if logger.isEnabledFor(logging.DEBUG):
        for value in sorted(coding):
            logger.debug("code %3d -> %s", value, coding[value].to01())
    return coding

def write_header(tree: HuffmanTree, bits_out: BitOutputStream):
    match tree:
        case Fork(l, r, _):
            bits_out.write_bits(1, 0)
            write_header(l, bits_out)
            write_header(r, bits_out)
        case Leaf(v, _):
            bits_out.write_bits(1, 1)
            bits_out.write_bits(LEAF_VALUE_BITS, v)

def read_header(bits_in: BitInputStream, depth: int = 0) -> HuffmanTree:
    if depth > MAX_DEPTH:
        raise HuffException(f"tree header nested deeper than {MAX_DEPTH}")
    flag = bits_in.read_bits(1)
    if flag == EOF:
        raise TruncatedHeaderError("stream ended inside tree header")
    if flag == 0:
        left = read_header(bits_in, depth + 1)
        right = read_header(bits_in, depth + 1)
        return Fork(left, right)
    value = bits_in.read_bits(LEAF_VALUE_BITS)
    if value == EOF:
        raise TruncatedHeaderError("stream ended inside leaf value")
    if value > PSEUDO_EOF:
        raise HuffException(f"illegal leaf value {value} in tree header")
    return Leaf(value)

def encode(bits_in: BitInputStream, bits_out: BitOutputStream, coding: dict[int, bitarray]):
    table = {value: (len(code), ba2int(code)) for value, code in coding.items()}
    while (b := bits_in.read_bits(BITS_PER_WORD)) != EOF:
        bits_out.write_bits(*table[b])
    # Don't forget to append pseudo-EOF code
    bits_out.write_bits(*table[PSEUDO_EOF])

def decode(root: HuffmanTree, bits_in: BitInputStream, bits_out: BitOutputStream):
    current = root
    while True:
        bit = bits_in.read_bits(1)
        if bit == EOF:
            raise TruncatedBodyError("bad input, no PSEUDO_EOF")
        # A lone leaf root is reached by every bit
        if isinstance(current, Fork):
            current = current.right if bit else current.left
        if isinstance(current, Leaf):
            if current.value == PSEUDO_EOF:
                return
            bits_out.write_bits(BITS_PER_WORD, current.value)
            current = root

def compress(bits_in: BitInputStream, bits_out: BitOutputStream):
    counts = calc_freq(bits_in)
    coding_tree = build_full_tree(counts)
    coding = make_code(coding_tree)

    bits_out.write_bits(BITS_PER_INT, HUFF_TREE)
    write_header(coding_tree, bits_out)

    bits_in.reset()
    encode(bits_in, bits_out, coding)
    bits_out.close()
    logger.info("compress: read %d bits, wrote %d bits", bits_in.bits_read, bits_out.bits_written)

def decompress(bits_in: BitInputStream, bits_out: BitOutputStream):
    # bits_out is only closed on success
    magic = bits_in.read_bits(BITS_PER_INT)
    if magic != HUFF_TREE:
        raise BadMagicError(f"illegal header starts with {magic:#x}" if magic != EOF else
                            "stream too short for magic number")
    codetree = read_header(bits_in)
    decode(codetree, bits_in, bits_out)
    bits_out.close()
    logger.info("decompress: read %d bits, wrote %d bits", bits_in.bits_read, bits_out.bits_written)

def compress_bytes(source: bytes) -> bytes:
    result = io.BytesIO()
    compress(BitInputStream(source), BitOutputStream(result))
    return result.getvalue()

def decompress_bytes(source: bytes) -> bytes:
    result = io.BytesIO()
    decompress(BitInputStream(source), BitOutputStream(result))
    return result.getvalue()

def process_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Static Huffman coding compressor")
    parser.add_argument("filename", type=str)
    parser.add_argument("--decompress", action='store_true')
    parser.add_argument("-o", "--output", type=str, default=None)
    parser.add_argument("-d", "--debug", action='count', default=0,
                        help="repeat for more detail")
    return parser.parse_args(argv)

def main(argv: list[str] | None = None):
    args = process_args(argv)
    level = {0: logging.WARNING, 1: logging.INFO}.get(args.debug, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.decompress:
        name = os.path.basename(args.filename)
        if not (name.endswith('.hf') and len(name) > 3) and args.output is None:
            print('Wrong file extension, only .hf files allowed', file = sys.stderr)
            sys.exit(-1)
        output = args.output or args.filename[:-3]
        with open(args.filename, 'rb') as f:
            source = f.read()
        # Decompress fully before touching the output file
        try:
            result = decompress_bytes(source)
        except HuffException as e:
            print(str(e), file = sys.stderr)
            sys.exit(-1)
        with open(output, 'wb') as f:
            f.write(result)
    else:
        output = args.output or f'{args.filename}.hf'
        with open(args.filename, 'rb') as f:
            bits_in = BitInputStream(f)
        with open(output, 'wb') as f:
            compress(bits_in, BitOutputStream(f))

if __name__ == '__main__':
    main()
