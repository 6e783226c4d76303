"""Power Monitor: dormitory electricity balance watcher with multi-channel alerts."""

__version__ = "0.3.0"
