"""snapctl — Btrfs snapshot helpers with bootloader synchronization."""

__version__ = "0.1.0"
