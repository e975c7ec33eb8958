import sys
from pathlib import Path

# Default target: first byte of the matcher context magic (context starts at 64).
DEFAULT_OFFSET = 64


def main():
    if len(sys.argv) not in (2, 3):
        print("Usage: corrupt_one_byte.py <file> [offset]")
        raise SystemExit(2)

    p = Path(sys.argv[1])
    idx = int(sys.argv[2]) if len(sys.argv) == 3 else DEFAULT_OFFSET
    b = bytearray(p.read_bytes())
    if idx >= len(b):
        print(f"Offset {idx} is past the end of a {len(b)}-byte file.")
        raise SystemExit(2)

    b[idx] ^= 0x01
    p.write_bytes(bytes(b))
    print(f"Corrupted 1 byte at offset {idx} in {p}")


if __name__ == "__main__":
    main()
