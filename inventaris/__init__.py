"""Sistem Manajemen Inventaris Sekolah."""

__version__ = "0.1.0"
