"""Shared building blocks for the Study Rooms backend."""
