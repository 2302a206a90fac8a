from ._backends import FileSystemBackend, MemoryBackend, MemoryGroup, MemoryUnit
from ._codec import decode, encode
from ._config import PersistenceConfig, get_default_config, set_default_config
from ._io import asave, get_default_backend, load, save, set_default_backend

__all__ = [
    FileSystemBackend.__name__,
    MemoryBackend.__name__,
    MemoryGroup.__name__,
    MemoryUnit.__name__,
    PersistenceConfig.__name__,
    asave.__name__,
    decode.__name__,
    encode.__name__,
    get_default_backend.__name__,
    get_default_config.__name__,
    load.__name__,
    save.__name__,
    set_default_backend.__name__,
    set_default_config.__name__,
]
