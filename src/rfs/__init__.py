"""Remote File Service (RFS)

A server exposes one directory over TCP; clients LIST it, GET files from it
and PUT files into it.

- control messages are single text lines (``OK``, ``ERR``, sizes, commands)
- file contents travel as raw bytes whose length was announced beforehand
- one thread per connection; a broken connection only ends its own session
"""

__all__ = []
