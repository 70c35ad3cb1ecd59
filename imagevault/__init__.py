"""imagevault.

Image metadata and blob storage backend built on a generic persistence layer.

Subpackages
-----------

- ``imagevault.core``: configuration, logging and the persistence layer
  (generic repositories, unit of work, dynamic sorting and includes).
- ``imagevault.services``: the image domain service composing the
  repositories with a blob storage backend.
"""

__version__ = "0.1.0"
