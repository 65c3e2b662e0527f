"""
Storage backend contract

Anything the EncryptionAdapter wraps has to look like this. LocalStorage is the
in-tree implementation; object stores or remote adapters only need the same
method names and shapes. The adapter itself satisfies the protocol too, so it
can stand in wherever a raw backend was used.
"""

from typing import Any, BinaryIO, Dict, List, Optional, Protocol, runtime_checkable

# per-call write options, e.g. {"visibility": "private"}
Config = Optional[Dict[str, Any]]


@runtime_checkable
class StorageBackend(Protocol):
    # content operations
    def write(self, path: str, contents: bytes, config: Config = None) -> Dict[str, Any]: ...

    def write_stream(self, path: str, stream: BinaryIO, config: Config = None) -> Dict[str, Any]: ...

    def update(self, path: str, contents: bytes, config: Config = None) -> Dict[str, Any]: ...

    def update_stream(self, path: str, stream: BinaryIO, config: Config = None) -> Dict[str, Any]: ...

    def read(self, path: str) -> bytes: ...

    def read_stream(self, path: str) -> BinaryIO: ...

    # metadata and tree operations
    def exists(self, path: str) -> bool: ...

    def delete(self, path: str) -> None: ...

    def move(self, source: str, destination: str) -> None: ...

    def copy(self, source: str, destination: str) -> None: ...

    def create_dir(self, dirname: str, config: Config = None) -> Dict[str, Any]: ...

    def delete_dir(self, dirname: str) -> None: ...

    def get_visibility(self, path: str) -> str: ...

    def set_visibility(self, path: str, visibility: str) -> None: ...

    def last_modified(self, path: str) -> int: ...

    def size(self, path: str) -> int: ...

    def mimetype(self, path: str) -> str: ...

    def get_metadata(self, path: str) -> Dict[str, Any]: ...

    def list_contents(self, directory: str = "", recursive: bool = False) -> List[Dict[str, Any]]: ...
