"""
FilePerm - Level-based access control for classified files.

An administrator defines permission levels and grants them to groups. Each
file may carry one level; a user may access it if one of their groups
grants its effective level. It provides:
- Fail-closed configuration validation
- Namespace and global default levels
- SQLite persistence of explicit levels
- One decision shared by every access surface

Example usage:
    $ fileperm validate-config fileperm.yaml
    $ fileperm set-level 42 confidential
    $ fileperm check-access 42 --group staff
"""

__version__ = "0.1.0"
__author__ = "FilePerm Contributors"

__all__ = [
    "__version__",
    "__author__",
]
