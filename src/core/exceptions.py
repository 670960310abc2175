"""Exceptions for blrtag."""


class BlrError(Exception):
    """Base exception for blrtag errors."""


class InvalidInputError(BlrError):
    """Raised when input files are invalid or missing"""


class ConfigurationError(BlrError):
    """Raised when a parameter is out of range, before any processing starts"""


class ProcessingError(BlrError):
    """Raised when pipeline processing fails"""


class MalformedRecordError(ProcessingError):
    """Raised when a read pair carries no usable barcode.

    Recoverable: the pair is excluded from clustering and passes through the
    tagger untagged.
    """

    def __init__(self, offset: int, reason: str):
        self.offset = offset
        self.reason = reason
        super().__init__(f"Malformed record at pair {offset}: {reason}")


class ClusterConsistencyError(ProcessingError):
    """Raised when a read pair or barcode would belong to two clusters"""


class ResourceExhaustionError(ProcessingError):
    """Raised on I/O or memory failure in the middle of a stream.

    `offset` is the 0-based offset of the last record processed successfully,
    or -1 when the stream failed before its first record.
    """

    def __init__(self, stage: str, offset: int, message: str):
        self.stage = stage
        self.offset = offset
        if offset < 0:
            where = "before the first record"
        else:
            where = f"after record {offset:,} (last successfully processed offset)"
        super().__init__(f"{stage}: stream failed {where}: {message}")


class BAMFormatError(InvalidInputError):
    """Raised when BAM file is corrupted or invalid format"""

    def __init__(self, bam_path: str, details: str = ""):
        message = f"BAM file appears corrupted or is not a valid BAM format: {bam_path}"
        if details:
            message += f"\n{details}"
        super().__init__(message)
