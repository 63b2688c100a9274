class WiringRagError(Exception):
    pass


class SourceUnavailable(WiringRagError, OSError):
    pass


class InvalidChunkConfig(WiringRagError, ValueError):
    pass


class EmbeddingFailed(WiringRagError, RuntimeError):
    pass


class IndexNotFound(WiringRagError, FileNotFoundError):
    pass


class CorruptIndex(WiringRagError, ValueError):
    pass


class IndexWriteError(WiringRagError, OSError):
    pass


class GenerationFailed(WiringRagError, RuntimeError):
    pass
