"""
SyncForge platform layer.

Single-entry filesystem primitives: hashing, copying, renaming and
removing files and directories.
"""
