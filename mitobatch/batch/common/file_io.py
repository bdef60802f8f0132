"""Basic file analysis functionality, for comparing artifacts of two runs."""
import hashlib

BUFFER_SIZE = 65536


def compute_sha256(input_file: str) -> str:
    sha = hashlib.sha256()
    with open(input_file, 'rb') as file:
        for data in iter(lambda: file.read(BUFFER_SIZE), b''):
            sha.update(data)
    return sha.hexdigest()


def count_lines(input_file: str, comment_prefix: bytes = b'#') -> tuple[int, int]:
    """Header (comment) lines and record lines of a line-oriented text file."""
    header = 0
    records = 0
    with open(input_file, 'rb') as file:
        for line in file:
            if line.startswith(comment_prefix):
                header += 1
            elif line.strip() != b'':
                records += 1
    return header, records
